"""Error types raised by deminify operations."""


class DeminifyError(Exception):
    """Base class for all deminify errors."""

    code: str = "DEMINIFY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DeminifyError):
    """A source file or transform script does not exist."""

    code = "FILE_NOT_FOUND"


class ParseError(DeminifyError):
    """Input could not be parsed into a usable syntax tree."""

    code = "PARSE_ERROR"


class InvalidPatternError(DeminifyError):
    """A search pattern failed to compile."""

    code = "INVALID_PATTERN"


class MapUnavailableError(DeminifyError):
    """An operation needing a position map ran on a file without one."""

    code = "MAP_UNAVAILABLE"


class PermissionDeniedError(DeminifyError):
    """Writing an output artifact was refused by the filesystem."""

    code = "PERMISSION_DENIED"


class NoSpaceError(DeminifyError):
    """Writing an output artifact failed for lack of disk space."""

    code = "NO_SPACE"


class PositionMapError(DeminifyError):
    """A serialized position map is malformed or has an unknown version."""

    code = "INVALID_MAP"


class TransformScriptError(DeminifyError):
    """A custom transform script could not be loaded or has the wrong shape."""

    code = "INVALID_SCRIPT"


class LLMNotConfiguredError(DeminifyError):
    """An LLM-backed operation ran without an API key."""

    code = "LLM_NOT_CONFIGURED"


class LLMRequestError(DeminifyError):
    """The LLM endpoint failed or returned no usable content."""

    code = "LLM_REQUEST_FAILED"


class LLMResponseError(DeminifyError):
    """The LLM answered with something other than the expected JSON shape."""

    code = "INVALID_LLM_RESPONSE"
