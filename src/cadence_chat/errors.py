"""Error taxonomy shared by the transport, orchestrator and tool dispatcher."""


class CadenceError(Exception):
    """Base class for every error the client surfaces to the UI."""

    @property
    def user_message(self) -> str:
        return str(self) or self.__class__.__name__


class NetworkUnavailable(CadenceError):
    """The reachability monitor reports no connection."""

    def __init__(self, message: str = "No network connection"):
        super().__init__(message)


class TransportError(CadenceError):
    """A request could not be completed."""

    retryable = False

    @property
    def user_message(self) -> str:
        return f"Network Error: {self}"


class InvalidURL(TransportError):
    pass


class InvalidResponse(TransportError):
    """Non-2xx status or a response of the wrong shape."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DecodingFailed(TransportError):
    retryable = True


class RequestFailed(TransportError):
    """Transport-level failure: connect error, timeout, reset."""

    retryable = True


class MaxRetriesExceeded(TransportError):
    def __init__(self, attempts: int, last_error: Exception | None = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Request failed after {attempts} attempts{detail}")
        self.attempts = attempts
        self.last_error = last_error


class RunFailed(CadenceError):
    def __init__(self, status: str, message: str | None = None):
        super().__init__(message or f"Run failed with status: {status}")
        self.status = status


class ToolError(CadenceError):
    """A tool call requested by the assistant could not be executed."""


class InvalidToolArguments(ToolError):
    def __init__(self, function_name: str, reason: str):
        super().__init__(f"Invalid arguments for {function_name}: {reason}")
        self.function_name = function_name


class UnknownToolFunction(ToolError):
    def __init__(self, function_name: str):
        super().__init__(f"Unknown function: {function_name}")
        self.function_name = function_name


class ToolExecutionFailed(ToolError):
    pass


class UserError(CadenceError):
    """The user asked for something the current state does not allow."""


class ThreadNotFound(UserError):
    def __init__(self, thread_id: str):
        super().__init__(f"Unknown thread: {thread_id}")
        self.thread_id = thread_id


class Cancelled(CadenceError):
    """A turn was cancelled cooperatively; never reported to the user."""


class UnexpectedError(CadenceError):
    def __init__(self, error: BaseException):
        super().__init__(f"An unexpected error occurred: {error}")
        self.error = error


def handle_error(error: BaseException) -> CadenceError:
    """Wrap any exception into the single user-facing error type."""
    if isinstance(error, CadenceError):
        return error
    return UnexpectedError(error)
