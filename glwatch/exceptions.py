"""Error taxonomy for glwatch."""


class GlwatchError(Exception):
    """Base class for every error raised by glwatch."""


class TransientFetchError(GlwatchError):
    """A remote fetch failed; the polling loop retries on its next tick."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(GlwatchError):
    """Endpoint, token or interval is missing or invalid. Fatal at startup."""


class InvariantViolation(GlwatchError):
    """The watch handle tree was mutated in a way that breaks its discipline."""
