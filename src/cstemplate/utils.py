"""Utility functions for cstemplate: secrets, formatting, escaping, and logging."""

import base64
import binascii
import os
import sys
import logging
import logging.handlers

import keyring
from keyring.errors import KeyringError

from .config import LOG_PATH, LOG_FILE_MAX_BYTES, LOG_FILE_BACKUP_COUNT, KEYRING_SERVICE
from .errors import ConfigError


def retrieve_secret(value: str) -> str:
    """
    Resolve a credential value from the INI file.

    Supported forms:
    - "keyring:<account>": looked up in the OS keyring under the cstemplate service
      (store it with: keyring set cstemplate <account>)
    - "base64:<data>": base64 encoded value
    - anything else: used as-is
    """
    if not value:
        return value

    if value.startswith("keyring:"):
        account = value[8:]  # Remove "keyring:" prefix
        try:
            secret = keyring.get_password(KEYRING_SERVICE, account)
        except KeyringError as e:
            raise ConfigError(f"Failed to read {account} from keyring: {e}")
        if secret is None:
            raise ConfigError(
                f"Secret not found in keyring for {account}. "
                f"Store it with: keyring set {KEYRING_SERVICE} {account}"
            )
        logging.debug(f"Secret for {account} retrieved from OS keyring")
        return secret

    if value.startswith("base64:"):
        try:
            return base64.b64decode(value[7:]).decode()
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ConfigError(f"Invalid base64 secret value: {e}")

    return value


# Initialize logging
def logging_main(debug: bool = False):
    """Initialize logging configuration."""
    log = logging.getLogger()

    if hasattr(logging_main, '_configured'):
        # Just update the console level if already configured
        for handler in log.handlers:
            if isinstance(handler, logging.StreamHandler) and getattr(handler, 'stream', None) is sys.stderr:
                handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        return

    while log.handlers:
        handler = log.handlers[0]
        handler.close()
        log.removeHandler(handler)

    log.setLevel(logging.DEBUG)

    # create formatter and add it to the handlers
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    formatterdebug = logging.Formatter('%(asctime)s - %(levelname)s - %(funcName)s - %(message)s')

    # create file handler which logs even debug messages
    try:
        os.makedirs(os.path.dirname(LOG_PATH), exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(LOG_PATH, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatterdebug)
        log.addHandler(fh)
    except OSError as e:
        print(f"Warning: cannot write log file {LOG_PATH}: {e}", file=sys.stderr)

    # stdout is reserved for command output
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.WARNING)
    if debug:
        ch.setLevel(logging.DEBUG)
    ch.setFormatter(formatter)
    log.addHandler(ch)

    logging_main._configured = True

    logging.debug("starting " + os.path.basename(sys.argv[0]))


def pretty_duration(seconds: int) -> str:
    """Render a duration as <h>h<m>m<s>s, omitting zero components.

    Examples:
        pretty_duration(0)     # ""
        pretty_duration(90)    # "1m30s"
        pretty_duration(3661)  # "1h1m1s"
    """
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    result = ""
    if hours > 0:
        result += f"{hours}h"
    if minutes > 0:
        result += f"{minutes}m"
    if secs > 0:
        result += f"{secs}s"
    return result


# Convert size in bytes to "pretty" size (KB, MB or GB, binary units)
def pretty_size(size_in_bytes) -> str:
    """Convert bytes to a human-readable size with one decimal.

    Sizes under 1 MiB are always shown in KB, even below one kilobyte.
    Non-numeric input is returned as a string unchanged.
    """
    try:
        size = int(size_in_bytes)
    except (ValueError, TypeError):
        return str(size_in_bytes)

    if size >= 1024 ** 3:
        return f"{size / 1024 ** 3:.1f}GB"
    if size >= 1024 ** 2:
        return f"{size / 1024 ** 2:.1f}MB"
    return f"{size / 1024:.1f}KB"


def escape_keyword(keyword: str) -> str:
    """Escape literal percent signs; the API treats a bare % as a wildcard."""
    return keyword.replace('%', '%25')


def escape_url(url: str) -> str:
    """Escape the reserved characters of a template source location."""
    return url.replace(':', '%3A').replace('/', '%2F')


def handle_errors(debug: bool = False, command_name: str = "command"):
    """Decorator to handle errors consistently across command handlers.

    Any exception is reported on stderr (with a traceback in debug mode) and
    the process exits with status 1.

    Usage:
        @handle_errors(debug=args.debug, command_name="list")
        def _execute():
            # command logic
    """
    def decorator(func):
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                print(f"Error executing {command_name} command: {e}", file=sys.stderr)
                if debug:
                    import traceback
                    traceback.print_exc()
                sys.exit(1)
        return wrapper
    return decorator
