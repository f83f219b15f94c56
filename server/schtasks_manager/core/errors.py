"""Structured error records raised by every scheduled task operation.

All user-visible failures are routed through :func:`new_error_record` so that
callers can match on a stable ``error_id`` and a ``category`` regardless of
whether the underlying problem was a transport failure, an authentication
failure or a cmdlet rejecting the request.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .win32_errors import get_win32_error_message, win32_code_from_hresult


class ErrorCategory(str, Enum):
    """Classification of a failure, modelled on PowerShell error categories."""

    NOT_SPECIFIED = "NotSpecified"
    INVALID_ARGUMENT = "InvalidArgument"
    CONNECTION_ERROR = "ConnectionError"
    AUTHENTICATION_ERROR = "AuthenticationError"
    PERMISSION_DENIED = "PermissionDenied"
    OBJECT_NOT_FOUND = "ObjectNotFound"
    INVALID_OPERATION = "InvalidOperation"
    OPERATION_STOPPED = "OperationStopped"


class ScheduledTaskError(RuntimeError):
    """Immutable error record describing a failed operation."""

    def __init__(
        self,
        error_id: str,
        category: ErrorCategory,
        target_object: Any,
        message: str,
        inner: Optional[BaseException] = None,
        win32_code: Optional[int] = None,
    ):
        if not error_id or not str(error_id).strip():
            raise ValueError("error_id must be a non-empty string")
        if not message or not str(message).strip():
            raise ValueError("message must be a non-empty string")

        super().__init__(message)
        object.__setattr__(self, "_error_id", str(error_id))
        object.__setattr__(self, "_category", ErrorCategory(category))
        object.__setattr__(self, "_target_object", target_object)
        object.__setattr__(self, "_message", str(message))
        object.__setattr__(self, "_inner", inner)
        object.__setattr__(self, "_win32_code", win32_code)
        if inner is not None:
            self.__cause__ = inner

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("__") and name.endswith("__"):
            # Exception machinery (traceback, context, notes) stays writable.
            super().__setattr__(name, value)
            return
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def error_id(self) -> str:
        return self._error_id

    @property
    def category(self) -> ErrorCategory:
        return self._category

    @property
    def target_object(self) -> Any:
        return self._target_object

    @property
    def message(self) -> str:
        return self._message

    @property
    def inner(self) -> Optional[BaseException]:
        return self._inner

    @property
    def win32_code(self) -> Optional[int]:
        return self._win32_code

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe representation of the record."""

        return {
            "error_id": self.error_id,
            "category": self.category.value,
            "target": None if self.target_object is None else str(self.target_object),
            "message": self.message,
            "inner_type": type(self.inner).__name__ if self.inner is not None else None,
            "win32_code": self.win32_code,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_id={self.error_id!r}, "
            f"category={self.category.value!r}, target_object={self.target_object!r}, "
            f"message={self.message!r})"
        )

    def __reduce__(self):
        return (
            type(self),
            (
                self.error_id,
                self.category,
                self.target_object,
                self.message,
                self.inner,
                self.win32_code,
            ),
        )


class ErrorRecordFactory(Protocol):
    """Callable that converts a raw failure into a :class:`ScheduledTaskError`."""

    def __call__(
        self,
        exception: BaseException,
        error_id: str,
        category: ErrorCategory,
        target_object: Any,
    ) -> BaseException: ...


def _extract_win32_code(exception: BaseException) -> Optional[int]:
    """Return the Win32 error code carried by ``exception``, if any."""

    for attr in ("win32_code", "winerror"):
        value = getattr(exception, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    hresult = getattr(exception, "hresult", None)
    if isinstance(hresult, int) and not isinstance(hresult, bool):
        wrapped = win32_code_from_hresult(hresult)
        return wrapped if wrapped is not None else hresult

    return None


def new_error_record(
    exception: BaseException,
    error_id: str,
    category: ErrorCategory,
    target_object: Any,
) -> ScheduledTaskError:
    """Wrap ``exception`` in a :class:`ScheduledTaskError`.

    The original exception is kept as ``inner`` and chained as ``__cause__``.
    When the exception carries no usable message but does carry a Win32 code
    or HRESULT, the translated system message is used instead.
    """

    win32_code = _extract_win32_code(exception)

    message = str(exception).strip()
    if not message and win32_code is not None:
        message = get_win32_error_message(win32_code)
    if not message:
        message = f"{error_id}: {type(exception).__name__}"

    return ScheduledTaskError(
        error_id=error_id,
        category=category,
        target_object=target_object,
        message=message,
        inner=exception,
        win32_code=win32_code,
    )


__all__ = [
    "ErrorCategory",
    "ErrorRecordFactory",
    "ScheduledTaskError",
    "new_error_record",
]
