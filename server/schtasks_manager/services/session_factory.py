"""Execution contexts for scheduled task operations.

Every operation acquires exactly one :class:`TaskSession` from the
:class:`SessionFactory` immediately before touching the Task Scheduler and
releases it when the operation ends. Sessions are never cached.
"""
from __future__ import annotations

import base64
import logging
import subprocess
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, List, Optional

from pydantic import BaseModel, SecretStr
from pypsrp.exceptions import (
    AuthenticationError,
    WinRMError,
    WinRMTransportError as PyWinRMTransportError,
)
from pypsrp.powershell import PowerShell, RunspacePool
from pypsrp.wsman import WSMan
from spnego.exceptions import SpnegoError

from ..core.config import settings
from ..core.errors import ErrorCategory, ErrorRecordFactory, new_error_record

logger = logging.getLogger(__name__)

SESSION_FAILED_ERROR_ID = "ScheduledTaskSessionFailed"


class TaskSessionError(RuntimeError):
    """Base exception for session establishment and transport failures."""


class SessionAuthenticationError(TaskSessionError):
    """Raised when authentication to a host fails."""


class SessionTransportError(TaskSessionError):
    """Raised for connectivity and lower-level transport failures."""


class Credential(BaseModel):
    """Explicit credential used for a remote session."""

    username: str
    password: SecretStr


@dataclass
class TaskTarget:
    """Where an operation executes: the local machine or a named host."""

    computer_name: Optional[str] = None
    credential: Optional[Credential] = None

    @property
    def is_local(self) -> bool:
        return not (self.computer_name or "").strip()

    @property
    def display_name(self) -> str:
        return "localhost" if self.is_local else self.computer_name.strip()


@dataclass
class CommandResult:
    """Collected output of one PowerShell invocation."""

    output: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    had_errors: bool = False


class TaskSession:
    """Execution context bound to a single target."""

    def __init__(self, target: TaskTarget) -> None:
        self.target = target
        self.closed = False

    @property
    def computer_name(self) -> str:
        return self.target.display_name

    def invoke(self, script: str) -> CommandResult:
        raise NotImplementedError

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "TaskSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self.closed:
            raise TaskSessionError(f"Session to {self.computer_name} has been closed")


class LocalTaskSession(TaskSession):
    """Runs PowerShell in a child process on this machine."""

    def __init__(
        self,
        target: TaskTarget,
        executable: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(target)
        self.executable = executable or settings.local_powershell_executable
        self.timeout = timeout if timeout is not None else settings.local_command_timeout

    def invoke(self, script: str) -> CommandResult:
        self._ensure_open()

        encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
        args = [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-EncodedCommand",
            encoded,
        ]

        start_time = perf_counter()
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise SessionTransportError(
                f"PowerShell executable '{self.executable}' not found on PATH"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise SessionTransportError(
                f"Local PowerShell invocation exceeded {self.timeout:.0f}s"
            ) from exc

        output = [line for line in completed.stdout.splitlines() if line.strip()]
        errors = [line for line in completed.stderr.splitlines() if line.strip()]

        logger.debug(
            "Local PowerShell invocation finished in %.2fs with exit code %s",
            perf_counter() - start_time,
            completed.returncode,
        )

        return CommandResult(
            output=output,
            errors=errors,
            had_errors=completed.returncode != 0 or bool(errors),
        )


class RemoteTaskSession(TaskSession):
    """PSRP runspace pool on a remote host."""

    def __init__(self, target: TaskTarget, wsman: WSMan) -> None:
        super().__init__(target)
        self.wsman = wsman
        self.pool: Optional[RunspacePool] = None

    @property
    def is_open(self) -> bool:
        return self.pool is not None and not self.closed

    def open(self) -> None:
        """Open the runspace pool and translate connection errors."""

        self._ensure_open()
        if self.pool is not None:
            return

        start_time = perf_counter()
        pool = RunspacePool(self.wsman)
        try:
            pool.open()
        except (AuthenticationError, SpnegoError) as exc:
            logger.error(
                "Authentication failure while opening runspace pool on %s: %s",
                self.computer_name,
                exc,
            )
            raise SessionAuthenticationError(str(exc)) from exc
        except (PyWinRMTransportError, WinRMError, OSError) as exc:
            logger.error(
                "Transport error while opening runspace pool on %s: %s",
                self.computer_name,
                exc,
            )
            raise SessionTransportError(str(exc)) from exc

        self.pool = pool
        logger.debug(
            "Runspace pool on %s opened in %.2fs",
            self.computer_name,
            perf_counter() - start_time,
        )

    def invoke(self, script: str) -> CommandResult:
        self.open()

        ps = PowerShell(self.pool)
        ps.add_script(script)
        try:
            ps.invoke()
        except (AuthenticationError, SpnegoError) as exc:
            logger.error(
                "Authentication failure while executing command on %s: %s",
                self.computer_name,
                exc,
            )
            raise SessionAuthenticationError(str(exc)) from exc
        except (PyWinRMTransportError, WinRMError, OSError) as exc:
            logger.error("WinRM execution failed on %s: %s", self.computer_name, exc)
            raise SessionTransportError(str(exc)) from exc

        output = [text for text in (_stringify(item) for item in ps.output) if text]
        errors = [text for text in (_stringify(item) for item in ps.streams.error) if text]

        return CommandResult(
            output=output,
            errors=errors,
            had_errors=bool(getattr(ps, "had_errors", False)) or bool(errors),
        )

    def close(self) -> None:
        if self.closed:
            return
        super().close()

        pool, self.pool = self.pool, None
        try:
            if pool is not None:
                try:
                    pool.close()
                except Exception:  # pragma: no cover - best effort cleanup
                    logger.debug("Failed to close runspace pool cleanly", exc_info=True)
        finally:
            closer = getattr(self.wsman, "close", None)
            if callable(closer):
                try:
                    closer()
                except Exception:  # pragma: no cover - best effort cleanup
                    logger.debug("Failed to close WSMan session cleanly", exc_info=True)


def _stringify(item: Any) -> str:
    """Best-effort string conversion for PSRP data."""

    if item is None:
        return ""

    formatter = getattr(item, "to_string", None)
    if isinstance(formatter, str) and formatter.strip():
        return formatter.strip()

    message = getattr(item, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()

    return str(item).strip()


class SessionFactory:
    """Single creation path for task sessions.

    Every session receives the same timeout, port and authentication settings.
    Remote sessions are opened eagerly when ``fail_fast`` is set so that
    authentication and connectivity problems surface before any task is
    touched.
    """

    def __init__(self, error_factory: ErrorRecordFactory = new_error_record) -> None:
        self._error_factory = error_factory

    def create(
        self,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        *,
        fail_fast: bool = True,
    ) -> TaskSession:
        """Return a session for ``computer_name`` (local when omitted)."""

        target = TaskTarget(computer_name=computer_name, credential=credential)

        if target.is_local:
            if credential is not None:
                logger.info(
                    "Credential for %s ignored: local sessions run as the current user",
                    credential.username,
                )
            logger.debug("Creating local task session")
            return LocalTaskSession(target)

        try:
            wsman = self._create_wsman(target)
        except TaskSessionError as exc:
            raise self._session_failure(exc, target)
        except Exception as exc:
            logger.error("Failed to create WSMan session to %s: %s", target.display_name, exc)
            failure = SessionTransportError(str(exc) or type(exc).__name__)
            raise self._session_failure(failure, target) from exc

        session = RemoteTaskSession(target, wsman)
        if not fail_fast:
            logger.debug("Deferring runspace pool open for %s", target.display_name)
            return session

        try:
            session.open()
        except TaskSessionError as exc:
            session.close()
            raise self._session_failure(exc, target)
        except Exception as exc:
            logger.error(
                "Unexpected failure while opening runspace pool on %s: %s",
                target.display_name,
                exc,
            )
            session.close()
            failure = SessionTransportError(str(exc) or type(exc).__name__)
            raise self._session_failure(failure, target) from exc

        return session

    def _create_wsman(self, target: TaskTarget) -> WSMan:
        """Create a WSMan transport using the configured settings."""

        connection_timeout = int(max(1.0, float(settings.winrm_connection_timeout)))
        operation_timeout = int(max(1.0, float(settings.winrm_operation_timeout)))
        read_timeout = int(max(operation_timeout + 1, float(settings.winrm_read_timeout)))

        if target.credential is not None:
            username = target.credential.username
            password = target.credential.password.get_secret_value()
        else:
            username = settings.winrm_kerberos_principal
            password = None

        logger.info(
            "Creating WinRM (PSRP) session to %s (port=%s, transport=%s, username=%s)",
            target.display_name,
            settings.winrm_port,
            settings.winrm_auth,
            username or "<current user>",
        )
        logger.debug(
            "WSMan timeouts for %s -> connection=%ss, operation=%ss, read=%ss",
            target.display_name,
            connection_timeout,
            operation_timeout,
            read_timeout,
        )

        try:
            return WSMan(
                target.display_name,
                port=settings.winrm_port,
                username=username,
                password=password,
                auth=settings.winrm_auth,
                ssl=settings.winrm_use_ssl,
                cert_validation=settings.winrm_cert_validation,
                connection_timeout=connection_timeout,
                operation_timeout=operation_timeout,
                read_timeout=read_timeout,
            )
        except AuthenticationError as exc:
            logger.error(
                "Authentication failed while connecting to %s: %s", target.display_name, exc
            )
            raise SessionAuthenticationError(str(exc)) from exc
        except (PyWinRMTransportError, WinRMError, ValueError) as exc:
            logger.error("Failed to create WSMan session to %s: %s", target.display_name, exc)
            raise SessionTransportError(str(exc)) from exc

    def _session_failure(self, exc: TaskSessionError, target: TaskTarget) -> BaseException:
        category = (
            ErrorCategory.AUTHENTICATION_ERROR
            if isinstance(exc, SessionAuthenticationError)
            else ErrorCategory.CONNECTION_ERROR
        )
        return self._error_factory(exc, SESSION_FAILED_ERROR_ID, category, target.display_name)


session_factory = SessionFactory()

__all__ = [
    "CommandResult",
    "Credential",
    "LocalTaskSession",
    "RemoteTaskSession",
    "SESSION_FAILED_ERROR_ID",
    "SessionAuthenticationError",
    "SessionFactory",
    "SessionTransportError",
    "TaskSession",
    "TaskSessionError",
    "TaskTarget",
    "session_factory",
]
