"""
Scraper Errors
==============

Exception taxonomy for the probate scraper. Per-filing problems are turned
into outcomes by the pipeline; everything else propagates to the caller of the
phase that raised it.
"""

from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper errors"""


class ConfigurationError(ScraperError):
    """Missing or invalid credentials/settings - fatal, never retried"""


class ChannelConnectionError(ScraperError):
    """The automation channel (remote browser) could not be established"""


class SessionNotReady(ScraperError):
    """A search or lookup was attempted before the gate was bypassed"""


class ControlNotFound(ScraperError):
    """A required page control is missing (markup changed or page not loaded)"""

    def __init__(self, role: str, url: str = ""):
        self.role = role
        super().__init__(f"Could not find the '{role}' control" + (f" on {url}" if url else ""))


class GateBypassFailed(ScraperError):
    """The session could not be driven past the welcome/challenge gate"""

    def __init__(self, location: str, challenges: int, detail: Optional[str] = None):
        self.location = location
        self.challenges = challenges
        message = f"Gate bypass failed at {location} after {challenges} challenge(s)"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class InvalidDateRange(ScraperError):
    """A date range the portal will not accept (e.g. spans calendar months)"""


class DocumentUnavailable(ScraperError):
    """No document, or no extractable content, for a filing"""


class RetryExhausted(ScraperError):
    """Raised by with_retry once every attempt has failed"""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")


# Errors that retrying cannot fix
FATAL_ERRORS = (ConfigurationError, InvalidDateRange, SessionNotReady)
