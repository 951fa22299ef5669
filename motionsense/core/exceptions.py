"""Custom exceptions for the MotionSense telemetry client."""


class MotionSenseException(Exception):
    """Base exception for MotionSense."""

    pass


class ConfigError(MotionSenseException):
    """Exception for missing or malformed broker configuration."""

    pass


class BusyError(MotionSenseException):
    """Exception raised when a transition is requested while another is in flight."""

    pass


class TransportException(MotionSenseException):
    """Exception for transport-related errors."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ConnectError(TransportException):
    """Exception for transport-level connection failures."""

    pass


class SubscribeError(TransportException):
    """Exception raised when the broker rejects a subscription."""

    def __init__(self, topic: str, reason: str) -> None:
        super().__init__(reason)
        self.topic = topic

    def __str__(self) -> str:
        return f"Subscription to '{self.topic}' failed: {self.reason}"


class PublishError(TransportException):
    """Exception for failed publish attempts."""

    pass


class DisconnectError(TransportException):
    """Exception for errors during transport teardown."""

    pass


class DecodeError(MotionSenseException):
    """Exception for malformed sensor payloads."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RecordingException(MotionSenseException):
    """Base exception for recording workflow errors."""

    pass


class ValidationError(RecordingException):
    """Exception for invalid recording input."""

    pass


class DuplicateActivityError(ValidationError):
    """Exception raised when an activity name is already known."""

    pass


class NoDataError(RecordingException):
    """Exception raised when saving without collected samples."""

    pass


class SaveError(RecordingException):
    """Exception raised when the persistence collaborator fails."""

    pass
