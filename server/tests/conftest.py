"""Test configuration for server test suite."""

import os
from unittest.mock import MagicMock

import pytest

# Keep the test run independent of any developer .env or Kerberos setup.
os.environ.setdefault("WINRM_KERBEROS_PRINCIPAL", "")
os.environ.setdefault("CONFIRM_PREFERENCE", "High")

from schtasks_manager.services.session_factory import TaskSession, TaskTarget  # noqa: E402


class FakeSession(TaskSession):
    """Session double that records invocations instead of running PowerShell."""

    def __init__(self, computer_name=None, result=None):
        super().__init__(TaskTarget(computer_name=computer_name))
        self.result = result
        self.scripts = []

    def invoke(self, script):
        self.scripts.append(script)
        return self.result


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_session():
    return FakeSession("hv1.example.com")


@pytest.fixture
def sessions(fake_session):
    """Session factory double returning ``fake_session``."""
    factory = MagicMock()
    factory.create.return_value = fake_session
    return factory


@pytest.fixture
def cmdlets():
    return MagicMock()
