"""Command-line interface for cstemplate."""

import argparse
import logging
import sys
from typing import List, Optional

from .config import (
    VERSION, DEFAULT_INI_FILE, IniConfig, MainSettings, load_ini,
    resolve_register, resolve_delete, resolve_list
)
from .client import create_client
from .create_functions import register_templates
from .errors import ConfigError
from .functions import delete_templates, list_templates
from .utils import logging_main, handle_errors


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with the register, delete and list subcommands."""
    main_parser = argparse.ArgumentParser(
        prog='cstemplate',
        description='Manipulate templates in CloudStack',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    main_parser.add_argument(
        '--ini', '-i',
        default=DEFAULT_INI_FILE,
        help=f'INI configuration file (default: {DEFAULT_INI_FILE})'
    )
    main_parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Log debug messages to console'
    )
    main_parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {VERSION}'
    )

    subparsers = main_parser.add_subparsers(dest='command', metavar='command', help='Available commands')
    subparsers.required = True

    # Register command
    register_parser = subparsers.add_parser('register', help='Register template')
    register_parser.add_argument(
        'name',
        nargs='?',
        help='Template name (registers every entry of the [register] section when omitted)'
    )
    register_parser.add_argument(
        'url',
        nargs='?',
        help='Template source url'
    )
    register_parser.add_argument(
        '--ostype', '-o',
        help='Template OS type search term, %% acts as a wildcard (e.g. centos%%6.5%%64)'
    )
    register_parser.add_argument(
        '--passwordenabled', '-p',
        metavar='{true,false}',
        help='Pass "false" to disable password reset for the template'
    )

    # Delete command
    delete_parser = subparsers.add_parser('delete', help='Delete template')
    delete_parser.add_argument(
        'ids',
        nargs='*',
        metavar='id',
        help='Template id (deletes every entry of the [delete] section when omitted)'
    )

    # List command
    list_parser = subparsers.add_parser('list', help='List templates')
    list_parser.add_argument(
        '--keyword', '-k',
        help='Keyword to search, "all" for no filter (default: [list] keyword or all)'
    )
    list_parser.add_argument(
        '--columns', '-c',
        help='Comma-separated columns to show (e.g. id,name), replaces the [list] section columns'
    )

    return main_parser


def handle_register_command(args, ini: IniConfig) -> None:
    """Handle register command"""
    main_settings = MainSettings.from_ini(ini)
    settings = resolve_register(ini, name=args.name, url=args.url,
                                ostype=args.ostype, passwordenabled=args.passwordenabled)
    client = create_client(main_settings)
    register_templates(client, main_settings, settings)


def handle_delete_command(args, ini: IniConfig) -> None:
    """Handle delete command"""
    settings = resolve_delete(ini, ids=args.ids)
    client = create_client(MainSettings.from_ini(ini))
    delete_templates(client, settings)


def handle_list_command(args, ini: IniConfig) -> None:
    """Handle list command"""
    settings = resolve_list(ini, keyword=args.keyword, columns=args.columns)
    client = create_client(MainSettings.from_ini(ini))
    list_templates(client, settings)


COMMAND_HANDLERS = {
    'register': handle_register_command,
    'delete': handle_delete_command,
    'list': handle_list_command,
}


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI application."""
    args = create_parser().parse_args(argv)

    logging_main(debug=args.debug)

    try:
        ini = load_ini(args.ini)
    except ConfigError as e:
        print(f"parse INI file {args.ini} failed : {e}", file=sys.stderr)
        sys.exit(1)

    logging.debug(f"Running {args.command} with config {args.ini}")
    handler = COMMAND_HANDLERS[args.command]

    @handle_errors(debug=args.debug, command_name=args.command)
    def _execute():
        handler(args, ini)

    _execute()
