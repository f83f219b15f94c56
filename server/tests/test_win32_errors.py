"""Tests for Win32 error translation."""
import logging

import pytest

from schtasks_manager.core.win32_errors import (
    get_win32_error_message,
    win32_code_from_hresult,
)


@pytest.mark.parametrize(
    "code, expected",
    [
        (0, "The operation completed successfully."),
        (2, "The system cannot find the file specified."),
        (3, "The system cannot find the path specified."),
        (5, "Access is denied."),
        (6, "The handle is invalid."),
    ],
)
def test_known_codes_return_canonical_messages(code, expected):
    assert get_win32_error_message(code) == expected


@pytest.mark.parametrize("code", [-1, -2147483648, 2147483647, 10001, 65535, 99999, 2**40])
def test_unknown_codes_return_non_empty_text(code):
    message = get_win32_error_message(code)

    assert isinstance(message, str)
    assert message.strip()


def test_unknown_code_uses_generic_fallback():
    assert get_win32_error_message(10001) == "Unknown error (0x2711)"


def test_negative_codes_are_formatted_as_unsigned():
    assert get_win32_error_message(-1) == "Unknown error (0xffffffff)"


def test_facility_win32_hresults_are_unwrapped():
    assert get_win32_error_message(0x80070005) == "Access is denied."
    # Signed form of the same HRESULT as reported by .NET
    assert get_win32_error_message(-2147024891) == "Access is denied."


def test_task_scheduler_codes_are_recognised():
    assert get_win32_error_message(0x00041301) == "The task is currently running."
    assert get_win32_error_message(-2147216629) == "There is no running instance of the task."


def test_non_integer_input_does_not_raise():
    assert get_win32_error_message("bogus").startswith("Unknown error")
    assert get_win32_error_message(None).startswith("Unknown error")


def test_win32_code_from_hresult():
    assert win32_code_from_hresult(0x80070002) == 2
    assert win32_code_from_hresult(-2147024894) == 2
    assert win32_code_from_hresult(0x8004130B) is None
    assert win32_code_from_hresult(5) is None


def test_translation_emits_two_debug_records(caplog):
    with caplog.at_level(logging.DEBUG, logger="schtasks_manager.core.win32_errors"):
        message = get_win32_error_message(5)

    records = [r for r in caplog.records if r.name == "schtasks_manager.core.win32_errors"]
    assert len(records) == 2
    assert all(r.levelno == logging.DEBUG for r in records)
    assert "5" in records[0].getMessage()
    assert message in records[1].getMessage()
