"""Orchestration of scheduled task operations on local, remote and cluster targets."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from ..core.config import settings
from ..core.errors import (
    ErrorCategory,
    ErrorRecordFactory,
    new_error_record,
)
from .confirmation import ConfirmationGate, ConfirmationResult, ConfirmImpact
from .session_factory import Credential, SessionFactory, TaskSession, session_factory
from .task_cmdlets import (
    ClusteredTaskInfo,
    ScheduledTaskCmdlets,
    ScheduledTaskInfo,
    task_cmdlets,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_ARGUMENT_ERROR_ID = "ScheduledTaskInvalidArgument"
CONFIRMATION_FAILED_ERROR_ID = "ScheduledTaskConfirmationFailed"

CLUSTER_TASK_TYPES = ("ResourceSpecific", "AnyNode", "ClusterWide")


class ScheduledTaskService:
    """Run scheduled task operations through one validated execution path.

    Each call validates its input, asks the confirmation gate when the
    operation is destructive, acquires exactly one session, invokes the cmdlet
    adapter and converts any failure through the error factory. Whatever the
    error factory returns is raised unchanged.
    """

    def __init__(
        self,
        sessions: Optional[SessionFactory] = None,
        cmdlets: Optional[ScheduledTaskCmdlets] = None,
        error_factory: ErrorRecordFactory = new_error_record,
        confirmation: Optional[ConfirmationGate] = None,
    ) -> None:
        self._sessions = sessions if sessions is not None else session_factory
        self._cmdlets = cmdlets if cmdlets is not None else task_cmdlets
        self._error_factory = error_factory
        self._confirmation = confirmation if confirmation is not None else ConfirmationGate()

    # Task operations

    def get_tasks(
        self,
        task_name: Optional[str] = None,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
    ) -> List[ScheduledTaskInfo]:
        """Return registered tasks, optionally filtered by name and path."""

        return self._execute(
            operation="Get-ScheduledTask",
            error_id="ScheduledTaskQueryFailed",
            target_object=task_name or task_path or "*",
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.get_tasks(session, task_name, task_path),
        )

    def start_task(
        self,
        task_name: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
    ) -> None:
        """Start a registered task."""

        task_name = self._require(task_name, "task_name")
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Start-ScheduledTask",
            error_id="ScheduledTaskStartFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.start_task(session, task_name, task_path),
            describe=f"Starting scheduled task '{task_name}' at path '{task_path}'",
        )

    def stop_task(
        self,
        task_name: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        *,
        confirm: Optional[bool] = None,
        what_if: bool = False,
    ) -> None:
        """Stop all running instances of a task."""

        task_name = self._require(task_name, "task_name")
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Stop-ScheduledTask",
            error_id="ScheduledTaskStopFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.stop_task(session, task_name, task_path),
            describe=f"Stopping scheduled task '{task_name}' at path '{task_path}'",
            impact=ConfirmImpact.MEDIUM,
            confirm=confirm,
            what_if=what_if,
        )

    def enable_task(
        self,
        task_name: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
    ) -> None:
        """Enable a disabled task."""

        task_name = self._require(task_name, "task_name")
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Enable-ScheduledTask",
            error_id="ScheduledTaskEnableFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.enable_task(session, task_name, task_path),
            describe=f"Enabling scheduled task '{task_name}' at path '{task_path}'",
        )

    def disable_task(
        self,
        task_name: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        *,
        confirm: Optional[bool] = None,
        what_if: bool = False,
    ) -> None:
        """Disable a task so its triggers no longer start it."""

        task_name = self._require(task_name, "task_name")
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Disable-ScheduledTask",
            error_id="ScheduledTaskDisableFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.disable_task(session, task_name, task_path),
            describe=f"Disabling scheduled task '{task_name}' at path '{task_path}'",
            impact=ConfirmImpact.MEDIUM,
            confirm=confirm,
            what_if=what_if,
        )

    def register_task(
        self,
        task_name: str,
        xml: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        *,
        task_user: Optional[str] = None,
        task_password: Optional[str] = None,
        force: bool = False,
    ) -> None:
        """Register a task from its XML definition."""

        task_name = self._require(task_name, "task_name")
        xml = self._require(xml, "xml", target_object=task_name)
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Register-ScheduledTask",
            error_id="ScheduledTaskRegisterFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.register_task(
                session,
                task_name,
                task_path,
                xml,
                user=task_user,
                password=task_password,
                force=force,
            ),
            describe=f"Registering scheduled task '{task_name}' at path '{task_path}'",
        )

    def unregister_task(
        self,
        task_name: str,
        task_path: Optional[str] = None,
        computer_name: Optional[str] = None,
        credential: Optional[Credential] = None,
        *,
        confirm: Optional[bool] = None,
        what_if: bool = False,
    ) -> None:
        """Remove a task definition."""

        task_name = self._require(task_name, "task_name")
        task_path = self._resolve_task_path(task_path)
        self._execute(
            operation="Unregister-ScheduledTask",
            error_id="ScheduledTaskUnregisterFailed",
            target_object=task_name,
            computer_name=computer_name,
            credential=credential,
            invoke=lambda session: self._cmdlets.unregister_task(session, task_name, task_path),
            describe=f"Unregistering scheduled task '{task_name}' at path '{task_path}'",
            impact=ConfirmImpact.MEDIUM,
            confirm=confirm,
            what_if=what_if,
        )

    # Clustered task operations

    def get_clustered_tasks(
        self,
        cluster: str,
        task_name: Optional[str] = None,
        task_type: Optional[str] = None,
        credential: Optional[Credential] = None,
    ) -> List[ClusteredTaskInfo]:
        """Return tasks registered on a failover cluster."""

        cluster = self._require(cluster, "cluster")
        if task_type is not None:
            task_type = self._require_task_type(task_type, task_name or cluster)
        return self._execute(
            operation="Get-ClusteredScheduledTask",
            error_id="ClusteredScheduledTaskQueryFailed",
            target_object=task_name or cluster,
            computer_name=cluster,
            credential=credential,
            invoke=lambda session: self._cmdlets.get_clustered_tasks(
                session, cluster, task_name, task_type
            ),
        )

    def register_clustered_task(
        self,
        task_name: str,
        cluster: str,
        xml: str,
        task_type: str,
        resource: Optional[str] = None,
        credential: Optional[Credential] = None,
    ) -> None:
        """Register a task on a failover cluster."""

        task_name = self._require(task_name, "task_name")
        cluster = self._require(cluster, "cluster", target_object=task_name)
        xml = self._require(xml, "xml", target_object=task_name)
        task_type = self._require_task_type(task_type, task_name)
        if task_type == "ResourceSpecific" and not (resource or "").strip():
            raise self._invalid_argument(
                "resource is required for ResourceSpecific clustered tasks", task_name
            )
        self._execute(
            operation="Register-ClusteredScheduledTask",
            error_id="ClusteredScheduledTaskRegisterFailed",
            target_object=task_name,
            computer_name=cluster,
            credential=credential,
            invoke=lambda session: self._cmdlets.register_clustered_task(
                session, cluster, task_name, xml, task_type, resource
            ),
            describe=f"Registering clustered task '{task_name}' on cluster '{cluster}'",
        )

    def unregister_clustered_task(
        self,
        task_name: str,
        cluster: str,
        credential: Optional[Credential] = None,
    ) -> None:
        """Remove a task from a failover cluster. Not confirmation-gated."""

        task_name = self._require(task_name, "task_name")
        cluster = self._require(cluster, "cluster", target_object=task_name)
        self._execute(
            operation="Unregister-ClusteredScheduledTask",
            error_id="ClusteredScheduledTaskUnregisterFailed",
            target_object=task_name,
            computer_name=cluster,
            credential=credential,
            invoke=lambda session: self._cmdlets.unregister_clustered_task(
                session, cluster, task_name
            ),
            describe=f"Unregistering clustered task '{task_name}' from cluster '{cluster}'",
        )

    # Orchestration helpers

    def _execute(
        self,
        *,
        operation: str,
        error_id: str,
        target_object: str,
        computer_name: Optional[str],
        credential: Optional[Credential],
        invoke: Callable[[TaskSession], T],
        describe: Optional[str] = None,
        impact: Optional[ConfirmImpact] = None,
        confirm: Optional[bool] = None,
        what_if: bool = False,
    ) -> Optional[T]:
        target_host = computer_name or "localhost"

        if impact is not None:
            decision = self._confirmation.should_process(
                f"{target_object} on {target_host}",
                operation,
                impact,
                confirm=confirm,
                what_if=what_if,
            )
            if decision is ConfirmationResult.DECLINED:
                logger.debug("%s for %s skipped", operation, target_object)
                return None
            if decision is ConfirmationResult.FAILED:
                raise self._error_factory(
                    RuntimeError(f"Confirmation for {operation} on {target_object} could not be obtained"),
                    CONFIRMATION_FAILED_ERROR_ID,
                    ErrorCategory.OPERATION_STOPPED,
                    target_object,
                )

        logger.debug("Starting %s for %s on %s", operation, target_object, target_host)
        session = self._sessions.create(computer_name, credential, fail_fast=True)
        try:
            if describe:
                logger.debug("%s on %s", describe, session.computer_name)
            try:
                result = invoke(session)
            except Exception as exc:
                logger.error(
                    "%s failed for %s on %s: %s", operation, target_object, target_host, exc
                )
                raise self._error_factory(
                    exc, error_id, ErrorCategory.INVALID_OPERATION, target_object
                )
        finally:
            session.close()

        logger.debug("Completed %s for %s on %s", operation, target_object, target_host)
        return result

    def _require(
        self, value: Optional[str], field_name: str, target_object: Optional[str] = None
    ) -> str:
        if value is None or not str(value).strip():
            raise self._invalid_argument(
                f"{field_name} must be a non-empty string", target_object or field_name
            )
        return value

    def _require_task_type(self, task_type: str, target_object: str) -> str:
        for known in CLUSTER_TASK_TYPES:
            if known.lower() == (task_type or "").strip().lower():
                return known
        raise self._invalid_argument(
            f"task_type must be one of {', '.join(CLUSTER_TASK_TYPES)}", target_object
        )

    def _invalid_argument(self, message: str, target_object: str) -> BaseException:
        return self._error_factory(
            ValueError(message),
            INVALID_ARGUMENT_ERROR_ID,
            ErrorCategory.INVALID_ARGUMENT,
            target_object,
        )

    @staticmethod
    def _resolve_task_path(task_path: Optional[str]) -> str:
        if task_path is None:
            return settings.default_task_path
        return task_path


# Global service instance
scheduled_task_service = ScheduledTaskService()

__all__ = [
    "CLUSTER_TASK_TYPES",
    "CONFIRMATION_FAILED_ERROR_ID",
    "INVALID_ARGUMENT_ERROR_ID",
    "ScheduledTaskService",
    "scheduled_task_service",
]
