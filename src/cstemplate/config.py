"""Configuration, constants, and INI resolution for cstemplate."""

import os
import configparser
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# Import version from single source of truth
from .__about__ import __version__
from .errors import ConfigError

VERSION = __version__

# Default INI file location (overridden with --ini)
DEFAULT_INI_FILE = '/etc/cstemplate.ini'

# Log file location (can be overridden via env var)
_LOG_PATH_DEFAULT = os.path.join(os.path.expanduser("~"), '.cstemplate/cstemplate.log')
LOG_PATH = os.environ.get('CSTEMPLATE_LOG_FILE', _LOG_PATH_DEFAULT)

# Logging constants
LOG_FILE_MAX_BYTES = 548576  # 0.5 MB - maximum size of log file before rotation
LOG_FILE_BACKUP_COUNT = 5  # Number of backup log files to keep

# API request timeouts (in seconds)
API_CONNECT_TIMEOUT = 5
API_READ_TIMEOUT = 60
API_MAX_RETRIES = 0  # registration is not idempotent, never replay a request

# Template status polling
POLL_INTERVAL_SECONDS = 30

# Keyring service name used for keyring:<account> secret references
KEYRING_SERVICE = 'cstemplate'

# Keyword value meaning "no server-side filter"
KEYWORD_ALL = 'all'

# Config sections
SECTION_MAIN = 'main'
SECTION_REGISTER = 'register'
SECTION_DELETE = 'delete'
SECTION_LIST = 'list'

_TRUE_VALUES = ('true', 'yes', '1', 'on')


def parse_bool(value: Optional[str]) -> bool:
    """Best-effort boolean parsing: true/yes/1/on are True, anything else False."""
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


class IniConfig:
    """Read-only view over a parsed INI file.

    Missing sections and keys yield empty values rather than errors; every
    field in the file is individually optional.
    """

    def __init__(self, parser: configparser.ConfigParser, path: str = ''):
        self._parser = parser
        self.path = path

    def has_section(self, name: str) -> bool:
        return self._parser.has_section(name)

    def section(self, name: str) -> Dict[str, str]:
        """Return the key/value pairs of a section in file order."""
        if not self._parser.has_section(name):
            return {}
        return dict(self._parser.items(name))

    def get(self, section: str, key: str, default: str = '') -> str:
        if not self._parser.has_section(section):
            return default
        return self._parser.get(section, key, fallback=default)

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        value = self.get(section, key, default='')
        if value == '':
            return default
        return parse_bool(value)


def _new_parser() -> configparser.ConfigParser:
    # Values such as "centos%6.5%64" carry literal percent signs
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    # Keep key case: register section keys are template names
    parser.optionxform = str
    return parser


def load_ini(path: str) -> IniConfig:
    """Load the INI configuration file.

    Raises:
        ConfigError: If the file does not exist or cannot be parsed
    """
    if not os.path.isfile(path):
        raise ConfigError(f"config file:{path} not found")

    parser = _new_parser()
    try:
        with open(path, 'r') as ini_file:
            parser.read_file(ini_file, source=path)
    except configparser.Error as e:
        raise ConfigError(f"Error parsing config file:{path}. Error: {e}")
    except OSError as e:
        raise ConfigError(f"Error loading config file:{path}. Error: {e}")
    return IniConfig(parser, path)


def parse_ini_string(text: str) -> IniConfig:
    """Parse INI content from a string (used for inline configuration and tests)."""
    parser = _new_parser()
    try:
        parser.read_string(text)
    except configparser.Error as e:
        raise ConfigError(f"Error parsing config: {e}")
    return IniConfig(parser)


def resolve(ini: IniConfig, section: str, overrides: Optional[Dict[str, Optional[str]]] = None) -> Dict[str, str]:
    """Merge a config section with explicitly set CLI overrides.

    An override whose value is None was not given on the command line and
    leaves the config value in place.
    """
    merged = ini.section(section)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    return merged


@dataclass
class MainSettings:
    """Connection and registration defaults from the [main] section."""
    endpoint: str = ''
    apikey: str = ''
    secretkey: str = ''
    username: str = ''
    password: str = ''
    zonename: str = ''
    format: str = ''
    hypervisor: str = ''
    ostype: str = ''
    passwordenabled: bool = False
    verifyssl: bool = True
    cafile: Optional[str] = None

    @classmethod
    def from_ini(cls, ini: IniConfig) -> 'MainSettings':
        get = lambda key: ini.get(SECTION_MAIN, key)
        return cls(
            endpoint=get('endpoint'),
            apikey=get('apikey'),
            secretkey=get('secretkey'),
            username=get('username'),
            password=get('password'),
            zonename=get('zonename'),
            format=get('format'),
            hypervisor=get('hypervisor'),
            ostype=get('ostype'),
            passwordenabled=ini.get_bool(SECTION_MAIN, 'passwordenabled'),
            verifyssl=ini.get_bool(SECTION_MAIN, 'verifyssl', default=True),
            cafile=get('cafile') or None,
        )


@dataclass
class RegisterSettings:
    ostype: str
    password_enabled: bool
    templates: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class DeleteSettings:
    ids: List[str] = field(default_factory=list)


@dataclass
class ListSettings:
    keyword: str = KEYWORD_ALL
    # lower-cased column name -> visible
    columns: Dict[str, bool] = field(default_factory=dict)

    @property
    def visible_columns(self) -> List[str]:
        return [name for name, visible in self.columns.items() if visible]


def resolve_register(ini: IniConfig, name: Optional[str] = None, url: Optional[str] = None,
                     ostype: Optional[str] = None, passwordenabled: Optional[str] = None) -> RegisterSettings:
    """Build register settings from [main], [register] and CLI values.

    The ostype given on the command line wins over the config. The
    passwordenabled flag can only be switched off from the command line.
    Templates are the single (name, url) pair when both positionals are given,
    otherwise every name = url entry of the [register] section.
    """
    merged = resolve(ini, SECTION_MAIN, {'ostype': ostype})
    password_enabled = parse_bool(merged.get('passwordenabled'))
    if passwordenabled is not None and passwordenabled.strip().lower() == 'false':
        password_enabled = False

    if name and url:
        templates = [(name, url)]
    else:
        templates = list(ini.section(SECTION_REGISTER).items())

    return RegisterSettings(
        ostype=merged.get('ostype', ''),
        password_enabled=password_enabled,
        templates=templates,
    )


def resolve_delete(ini: IniConfig, ids: Optional[List[str]] = None) -> DeleteSettings:
    """Template ids from the command line, otherwise the [delete] section values."""
    if ids:
        return DeleteSettings(ids=list(ids))
    return DeleteSettings(ids=[v for v in ini.section(SECTION_DELETE).values() if v])


def resolve_list(ini: IniConfig, keyword: Optional[str] = None, columns: Optional[str] = None) -> ListSettings:
    """Build list settings.

    The [list] section provides column visibility defaults plus a keyword
    entry. Columns given on the command line replace the config visibility
    entirely.
    """
    section = {k.lower(): v for k, v in ini.section(SECTION_LIST).items()}
    config_keyword = section.pop('keyword', '')

    visibility = {name: parse_bool(value) for name, value in section.items()}
    if columns is not None:
        visibility = {name: False for name in visibility}
        for name in columns.split(','):
            name = name.strip().lower()
            if name:
                visibility[name] = True

    resolved_keyword = keyword if keyword is not None else config_keyword
    return ListSettings(keyword=resolved_keyword or KEYWORD_ALL, columns=visibility)
