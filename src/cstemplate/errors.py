"""Exception types raised by cstemplate."""

from typing import Optional


class ConfigError(ValueError):
    """INI file missing, unreadable, or referencing an unavailable secret."""


class LookupNotFoundError(ValueError):
    """A name lookup (ostype, zone) returned no match."""


class CloudStackError(Exception):
    """A management API call failed.

    Carries the API command, the HTTP status and the error code/text reported
    in the response envelope when the server sent one.
    """

    def __init__(self, command: str, status: int, error_text: str, error_code: Optional[int] = None):
        self.command = command
        self.status = status
        self.error_text = error_text
        self.error_code = error_code
        super().__init__(self.__str__())

    def __str__(self):
        code = f" ({self.error_code})" if self.error_code is not None else ""
        return f"{self.command} failed with HTTP {self.status}{code}: {self.error_text}"
