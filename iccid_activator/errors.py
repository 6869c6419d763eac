"""
Exception hierarchy.

Per-attempt failures (ActivationError subclasses) are retryable and are
converted into an "error" Outcome once retries run out.  SessionOpenError
ends the retry sequence for one ICCID.  InputLoadError, ConfigError and
RunInProgressError stop the whole run before anything is scheduled.
"""


class ActivatorError(Exception):
    """Base class for every error raised by this package."""


class ActivationError(ActivatorError):
    """A single activation attempt failed and may be retried."""


class NavigationError(ActivationError):
    """Page navigation timed out or hit a network error."""


class ElementNotFoundError(ActivationError):
    """A selector never resolved within its timeout."""


class SessionOpenError(ActivatorError):
    """The browser or an isolated browsing context could not be created."""


class InputLoadError(ActivatorError):
    """The ICCID input file is missing or malformed."""


class ConfigError(ActivatorError, ValueError):
    """config.yaml is missing a key or holds an invalid value."""


class RunInProgressError(ActivatorError):
    """Another activation run already holds the run lock."""
