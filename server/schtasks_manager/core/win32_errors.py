"""Translation of Win32 error codes and HRESULTs into readable messages."""
from __future__ import annotations

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_UINT32_MASK = 0xFFFFFFFF
_FACILITY_WIN32_PREFIX = 0x80070000

# Canonical system messages as returned by FormatMessage for the en-US locale.
WIN32_ERROR_MESSAGES: Dict[int, str] = {
    0: "The operation completed successfully.",
    1: "Incorrect function.",
    2: "The system cannot find the file specified.",
    3: "The system cannot find the path specified.",
    4: "The system cannot open the file.",
    5: "Access is denied.",
    6: "The handle is invalid.",
    8: "Not enough memory resources are available to process this command.",
    13: "The data is invalid.",
    32: "The process cannot access the file because it is being used by another process.",
    53: "The network path was not found.",
    87: "The parameter is incorrect.",
    183: "Cannot create a file when that file already exists.",
    1058: (
        "The service cannot be started, either because it is disabled or because "
        "it has no enabled devices associated with it."
    ),
    1312: "A specified logon session does not exist. It may already have been terminated.",
    1326: "The user name or password is incorrect.",
    1385: "Logon failure: the user has not been granted the requested logon type at this computer.",
    1722: "The RPC server is unavailable.",
    1753: "There are no more endpoints available from the endpoint mapper.",
}

# Task Scheduler status codes (SCHED_S_* / SCHED_E_*) commonly seen in
# LastTaskResult and in cmdlet failures.
TASK_SCHEDULER_MESSAGES: Dict[int, str] = {
    0x00041300: "The task is ready to run at its next scheduled time.",
    0x00041301: "The task is currently running.",
    0x00041302: "The task will not run at the scheduled times because it has been disabled.",
    0x00041303: "The task has not yet run.",
    0x00041325: "The Task Scheduler service has asked the task to run.",
    0x8004130B: "There is no running instance of the task.",
    0x8004130F: (
        "No account information could be found in the Task Scheduler security "
        "database for the task indicated."
    ),
    0x80041318: "The task XML contains a value which is incorrectly formatted or out of range.",
    0x80041319: "The task XML is missing a required element or attribute.",
    0x80041326: "The task is disabled.",
}


def _to_uint32(code: int) -> int:
    """Return the 32-bit two's complement form of ``code``."""

    return code & _UINT32_MASK


def win32_code_from_hresult(hresult: int) -> Optional[int]:
    """Extract the Win32 error code wrapped by a FACILITY_WIN32 HRESULT."""

    unsigned = _to_uint32(hresult)
    if unsigned & 0xFFFF0000 == _FACILITY_WIN32_PREFIX:
        return unsigned & 0xFFFF
    return None


def get_win32_error_message(code: int) -> str:
    """Return a descriptive message for a Win32 error code.

    Accepts plain Win32 codes as well as HRESULT values in either their signed
    or unsigned representation. Unrecognised codes produce the generic
    ``Unknown error (0x...)`` text instead of raising.
    """

    logger.debug("Translating Win32 error code %s", code)

    try:
        value = int(code)
    except (TypeError, ValueError):
        message = f"Unknown error ({code!r})"
        logger.debug("Resolved Win32 error code %r to '%s'", code, message)
        return message

    unsigned = _to_uint32(value)
    message = WIN32_ERROR_MESSAGES.get(value) if value >= 0 else None
    if message is None:
        message = TASK_SCHEDULER_MESSAGES.get(unsigned)
    if message is None:
        wrapped = win32_code_from_hresult(value)
        if wrapped is not None:
            message = WIN32_ERROR_MESSAGES.get(wrapped)
    if message is None:
        message = f"Unknown error (0x{unsigned:x})"

    logger.debug("Resolved Win32 error code %s to '%s'", value, message)
    return message


__all__ = [
    "TASK_SCHEDULER_MESSAGES",
    "WIN32_ERROR_MESSAGES",
    "get_win32_error_message",
    "win32_code_from_hresult",
]
