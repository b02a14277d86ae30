from enum import Enum


class ExceptionType(str, Enum):
    CONNECTION = "CONNECTION"
    PROTOCOL = "PROTOCOL"
    SHUTDOWN = "SHUTDOWN"
    CANCELLED = "CANCELLED"
    CONFIGURATION = "CONFIGURATION"


class SamplerException(Exception):
    """
    Base class for every error raised by the sampler core.
    """

    message: str = "A sampler error occurred."
    category: ExceptionType = ExceptionType.PROTOCOL

    def __init__(self, message: str | None = None, cause: BaseException | None = None):
        self.message = message or self.message
        self.cause = cause
        super().__init__(self.message)

    def __str__(self):
        return self.message

    def to_dict(self):
        return {
            "message": self.message,
            "category": self.category.value,
            "type": self.__class__.__name__,
        }


class BrokerConnectionError(SamplerException):
    """
    Raised when none of the configured addresses accepted a connection
    within the connection timeout (includes authentication failures).
    """

    message: str = "Could not connect to any configured broker address."
    category: ExceptionType = ExceptionType.CONNECTION


class ChannelProtocolError(SamplerException):
    """
    Raised when the broker rejects a declare or bind. The broker closes the
    channel as a side effect, so the next provisioning pass reopens it.
    """

    message: str = "The broker rejected a channel operation."
    category: ExceptionType = ExceptionType.PROTOCOL

    def __init__(
        self,
        message: str | None = None,
        cause: BaseException | None = None,
        reply_code: int | None = None,
    ):
        self.reply_code = reply_code
        super().__init__(message, cause)

    def __str__(self):
        if self.reply_code:
            return f"({self.reply_code}) {self.message}"
        return self.message

    def to_dict(self):
        return {**super().to_dict(), "reply_code": self.reply_code}


class ShutdownSignal(SamplerException):
    """
    Raised when the broker shuts the connection down.
    """

    message: str = "The broker closed the connection."
    category: ExceptionType = ExceptionType.SHUTDOWN


class ConsumerCancelled(SamplerException):
    """
    Raised when the broker cancels the consumer.
    """

    message: str = "The broker cancelled the consumer."
    category: ExceptionType = ExceptionType.CANCELLED


class TLSSetupError(SamplerException):
    """
    Raised when the TLS context for the connection cannot be built.
    """

    message: str = "Failed to set up TLS for the broker connection."
    category: ExceptionType = ExceptionType.CONFIGURATION


class SamplerClosedError(SamplerException):
    """
    Raised when a sample is requested after the sampler was closed.
    """

    message: str = "The sampler is closed."
    category: ExceptionType = ExceptionType.CONFIGURATION
