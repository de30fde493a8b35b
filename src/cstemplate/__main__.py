"""Module entry point for python -m cstemplate."""

import sys

from .cli import main


def run():
    """Console script entry point."""
    try:
        main()
    except KeyboardInterrupt:
        print("Program interrupted by user. Exiting...")
        sys.exit(0)
    except SystemExit:
        # Let SystemExit pass through (from sys.exit() calls)
        raise
    except Exception as e:
        # For known error types, show clean error message without traceback
        if isinstance(e, (ValueError, FileNotFoundError, PermissionError, KeyError)):
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
