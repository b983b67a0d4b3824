class TarjamaError(Exception):
    """Base class for errors raised by the transcription/translation services."""


class ValidationError(TarjamaError, ValueError):
    """Request rejected before any provider call was made."""


class UpstreamServiceError(TarjamaError):
    """Represents errors returned by (or timeouts of) an external provider."""


class ASRServiceError(UpstreamServiceError):
    """Represents errors returned by the ASR provider."""


class HistoryPersistenceError(TarjamaError):
    """A history write failed. Logged only, never surfaced to callers."""
