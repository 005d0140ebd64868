"""Error kinds raised by the scraping core."""
from enum import Enum


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    PRIVATE = "private"
    CONNECTION_ERROR = "connection_error"
    UNEXPECTED_STATUS = "unexpected_status"
    PARSE_INCOMPLETE = "parse_incomplete"
    PAGINATION_LIMIT = "pagination_limit"


_USER_MESSAGES = {
    ErrorKind.NOT_FOUND: "Letterboxd user or film not found.",
    ErrorKind.PRIVATE: "This Letterboxd profile is private.",
    ErrorKind.CONNECTION_ERROR: "Could not connect to Letterboxd. Try again later.",
    ErrorKind.UNEXPECTED_STATUS: "Letterboxd returned an unexpected response. Try again later.",
    ErrorKind.PARSE_INCOMPLETE: "Some Letterboxd data could not be read.",
    ErrorKind.PAGINATION_LIMIT: "This Letterboxd history is too large to read in one go.",
}


class ScraperError(Exception):
    """A page-level failure; record-level gaps are logged and dropped instead."""

    def __init__(self, kind: ErrorKind, url: str | None = None,
                 status_code: int | None = None, detail: str | None = None):
        self.kind = kind
        self.url = url
        self.status_code = status_code
        self.detail = detail
        message = f"{kind.name}"
        if url:
            message += f" ({url})"
        if status_code is not None:
            message += f" HTTP {status_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self.kind]
