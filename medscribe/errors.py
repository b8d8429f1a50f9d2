"""Exception hierarchy for the MedScribe transcription pipeline."""

from typing import Dict, Any, Optional


class ScribeError(Exception):
    """Base exception for all MedScribe errors.

    Carries a machine-readable error code and context so the controller can
    turn any failure into a single actionable message for the UI.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for callbacks and logs."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context
        }

        if self.cause:
            result["caused_by"] = str(self.cause)

        return result


class DeviceError(ScribeError):
    """No microphone is available or permission to use it was denied."""

    def __init__(self, message: str, device_index: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        if device_index is not None:
            self.context["device_index"] = device_index


class ConfigError(ScribeError):
    """Unsupported audio/stream configuration or missing settings."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        if field:
            self.context["field"] = field
        if value is not None:
            self.context["value"] = str(value)


class StreamError(ScribeError):
    """Transport-level failure of the transcription stream.

    Network resets, authentication failures and handshake rejections all end
    the active session. The caller must start a new one.
    """

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if session_id:
            self.context["session_id"] = session_id


class QuotaExceeded(ScribeError):
    """The usage meter denied a new session."""

    def __init__(
        self,
        message: str,
        upgrade_hint: str = "Upgrade to Pro for unlimited access.",
        remaining_quota: Optional[int] = 0,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.upgrade_hint = upgrade_hint
        self.remaining_quota = remaining_quota
        self.context["remaining_quota"] = remaining_quota


class ParseError(ScribeError):
    """A single inbound payload could not be decoded."""


class SessionStateError(ScribeError):
    """An operation was attempted in a state that does not allow it."""

    def __init__(self, message: str, state: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        if state:
            self.context["state"] = state
