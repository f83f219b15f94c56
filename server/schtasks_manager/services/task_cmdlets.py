"""PowerShell ScheduledTasks and FailoverClusters cmdlets invoked over a task session."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .session_factory import CommandResult, TaskSession

logger = logging.getLogger(__name__)


class TaskCommandError(RuntimeError):
    """Raised when a scheduled task cmdlet reports a failure."""

    def __init__(self, message: str, hresult: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.hresult = hresult


@dataclass(slots=True)
class ScheduledTaskInfo:
    """Summary of a registered scheduled task."""

    task_name: str
    task_path: str
    state: str
    description: Optional[str] = None
    author: Optional[str] = None


@dataclass(slots=True)
class ClusteredTaskInfo:
    """Summary of a task registered on a failover cluster."""

    task_name: str
    task_type: str
    current_owner: Optional[str] = None
    cluster: Optional[str] = None


class ScheduledTaskCmdlets:
    """Build and run cmdlet scripts against an already established session."""

    _HRESULT_SENTINEL: str = "__STM_HRESULT__:"

    def get_tasks(
        self,
        session: TaskSession,
        task_name: Optional[str] = None,
        task_path: Optional[str] = None,
    ) -> List[ScheduledTaskInfo]:
        parameters = []
        if task_name:
            parameters.append("-TaskName $taskName")
        if task_path:
            parameters.append("-TaskPath $taskPath")

        statement = (
            f"$tasks = @(Get-ScheduledTask {' '.join(parameters)} -ErrorAction Stop | "
            "Select-Object TaskName, TaskPath, @{n='State';e={[string]$_.State}}, Description, Author)\n"
            "ConvertTo-Json -InputObject $tasks -Depth 3 -Compress"
        )
        script = self._format_script(
            statement, {"taskName": task_name, "taskPath": task_path}
        )
        records = self._parse_json(self._run(session, script, "Get-ScheduledTask"))
        return [
            ScheduledTaskInfo(
                task_name=str(record.get("TaskName") or ""),
                task_path=str(record.get("TaskPath") or ""),
                state=str(record.get("State") or "Unknown"),
                description=record.get("Description"),
                author=record.get("Author"),
            )
            for record in records
        ]

    def start_task(self, session: TaskSession, task_name: str, task_path: str) -> None:
        self._run_task_cmdlet(session, "Start-ScheduledTask", task_name, task_path)

    def stop_task(self, session: TaskSession, task_name: str, task_path: str) -> None:
        self._run_task_cmdlet(session, "Stop-ScheduledTask", task_name, task_path)

    def enable_task(self, session: TaskSession, task_name: str, task_path: str) -> None:
        self._run_task_cmdlet(session, "Enable-ScheduledTask", task_name, task_path)

    def disable_task(self, session: TaskSession, task_name: str, task_path: str) -> None:
        self._run_task_cmdlet(session, "Disable-ScheduledTask", task_name, task_path)

    def unregister_task(self, session: TaskSession, task_name: str, task_path: str) -> None:
        self._run_task_cmdlet(
            session,
            "Unregister-ScheduledTask",
            task_name,
            task_path,
            extra_parameters="-Confirm:$false",
        )

    def register_task(
        self,
        session: TaskSession,
        task_name: str,
        task_path: str,
        xml: str,
        *,
        user: Optional[str] = None,
        password: Optional[str] = None,
        force: bool = False,
    ) -> None:
        parameters = ["-TaskName $taskName", "-TaskPath $taskPath", "-Xml $xml"]
        if user:
            parameters.append("-User $user")
        if password:
            parameters.append("-Password $password")
        if force:
            parameters.append("-Force")

        statement = f"Register-ScheduledTask {' '.join(parameters)} -ErrorAction Stop | Out-Null"
        script = self._format_script(
            statement,
            {
                "taskName": task_name,
                "taskPath": task_path,
                "xml": xml,
                "user": user,
                "password": password,
            },
        )
        self._run(session, script, "Register-ScheduledTask")

    def get_clustered_tasks(
        self,
        session: TaskSession,
        cluster: str,
        task_name: Optional[str] = None,
        task_type: Optional[str] = None,
    ) -> List[ClusteredTaskInfo]:
        parameters = ["-Cluster $cluster"]
        if task_name:
            parameters.append("-TaskName $taskName")
        if task_type:
            parameters.append("-TaskType $taskType")

        statement = (
            f"$tasks = @(Get-ClusteredScheduledTask {' '.join(parameters)} -ErrorAction Stop | "
            "Select-Object TaskName, @{n='TaskType';e={[string]$_.TaskType}}, CurrentOwner, Cluster)\n"
            "ConvertTo-Json -InputObject $tasks -Depth 3 -Compress"
        )
        script = self._format_script(
            statement,
            {"cluster": cluster, "taskName": task_name, "taskType": task_type},
            modules=("FailoverClusters",),
        )
        records = self._parse_json(self._run(session, script, "Get-ClusteredScheduledTask"))
        return [
            ClusteredTaskInfo(
                task_name=str(record.get("TaskName") or ""),
                task_type=str(record.get("TaskType") or "Unknown"),
                current_owner=record.get("CurrentOwner"),
                cluster=record.get("Cluster") or cluster,
            )
            for record in records
        ]

    def register_clustered_task(
        self,
        session: TaskSession,
        cluster: str,
        task_name: str,
        xml: str,
        task_type: str,
        resource: Optional[str] = None,
    ) -> None:
        parameters = ["-Cluster $cluster", "-TaskName $taskName", "-Xml $xml", "-TaskType $taskType"]
        if resource:
            parameters.append("-Resource $resource")

        statement = (
            f"Register-ClusteredScheduledTask {' '.join(parameters)} -ErrorAction Stop | Out-Null"
        )
        script = self._format_script(
            statement,
            {
                "cluster": cluster,
                "taskName": task_name,
                "xml": xml,
                "taskType": task_type,
                "resource": resource,
            },
            modules=("FailoverClusters",),
        )
        self._run(session, script, "Register-ClusteredScheduledTask")

    def unregister_clustered_task(self, session: TaskSession, cluster: str, task_name: str) -> None:
        statement = (
            "Unregister-ClusteredScheduledTask -Cluster $cluster -TaskName $taskName "
            "-ErrorAction Stop | Out-Null"
        )
        script = self._format_script(
            statement,
            {"cluster": cluster, "taskName": task_name},
            modules=("FailoverClusters",),
        )
        self._run(session, script, "Unregister-ClusteredScheduledTask")

    def _run_task_cmdlet(
        self,
        session: TaskSession,
        verb: str,
        task_name: str,
        task_path: str,
        extra_parameters: str = "",
    ) -> None:
        parameter_segment = "-TaskName $taskName -TaskPath $taskPath"
        if extra_parameters:
            parameter_segment = f"{parameter_segment} {extra_parameters.strip()}"

        statement = f"{verb} {parameter_segment} -ErrorAction Stop | Out-Null"
        script = self._format_script(statement, {"taskName": task_name, "taskPath": task_path})
        self._run(session, script, verb)

    def _run(self, session: TaskSession, script: str, verb: str) -> List[str]:
        """Invoke ``script`` and raise :class:`TaskCommandError` on failure."""

        logger.debug("Invoking %s on %s", verb, session.computer_name)
        result: CommandResult = session.invoke(script)

        hresult: Optional[int] = None
        payload: List[str] = []
        for line in result.output:
            if line.startswith(self._HRESULT_SENTINEL):
                parsed = line[len(self._HRESULT_SENTINEL) :].strip()
                try:
                    hresult = int(parsed)
                except ValueError:
                    logger.warning(
                        "Received malformed HRESULT sentinel '%s' from %s",
                        parsed,
                        session.computer_name,
                    )
                continue
            payload.append(line)

        if result.had_errors or hresult is not None:
            message = next((line for line in result.errors if line.strip()), "")
            if not message:
                message = f"{verb} failed on {session.computer_name}"
            logger.warning(
                "%s failed on %s: %s (hresult=%s)",
                verb,
                session.computer_name,
                message,
                hresult,
            )
            raise TaskCommandError(message.strip(), hresult)

        return payload

    @staticmethod
    def _parse_json(lines: Sequence[str]) -> List[Dict[str, Any]]:
        text = "\n".join(lines).strip()
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TaskCommandError(f"Unable to parse cmdlet output: {exc}") from exc
        if isinstance(data, dict):
            return [data]
        return [item for item in data if isinstance(item, dict)]

    def _format_script(
        self,
        statement: str,
        variables: Dict[str, Any],
        modules: Sequence[str] = ("ScheduledTasks",),
    ) -> str:
        """Embed ``statement`` in boilerplate that reports the failing HRESULT."""

        assignments = [
            f"${name} = {self._ps_literal(value)}"
            for name, value in variables.items()
            if value is not None
        ]
        imports = [f"Import-Module {module} -ErrorAction Stop | Out-Null" for module in modules]

        command_lines = [
            "$ErrorActionPreference = 'Stop'",
            "$ProgressPreference = 'SilentlyContinue'",
            *imports,
            "",
            *assignments,
            "",
            "try {",
            "    " + statement.replace("\n", "\n    "),
            "} catch {",
            "    $message = $_.Exception.Message",
            "    if ($_.ErrorDetails -and $_.ErrorDetails.Message) {",
            "        $message = $_.ErrorDetails.Message",
            "    }",
            f"    Write-Output (\"{self._HRESULT_SENTINEL}\" + $_.Exception.HResult)",
            "    throw $message",
            "}",
        ]

        return "\n".join(command_lines)

    @staticmethod
    def _ps_literal(value: Any) -> str:
        """Render a Python value as a PowerShell literal."""

        if isinstance(value, bool):
            return "$true" if value else "$false"
        if isinstance(value, int):
            return str(value)
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"


# Global cmdlet adapter instance
task_cmdlets = ScheduledTaskCmdlets()

__all__ = [
    "ClusteredTaskInfo",
    "ScheduledTaskCmdlets",
    "ScheduledTaskInfo",
    "TaskCommandError",
    "task_cmdlets",
]
