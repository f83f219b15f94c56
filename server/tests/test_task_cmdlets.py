"""Tests for the scheduled task cmdlet adapter."""

import pytest

from schtasks_manager.services.session_factory import CommandResult
from schtasks_manager.services.task_cmdlets import (
    ScheduledTaskCmdlets,
    TaskCommandError,
)

from conftest import FakeSession


@pytest.fixture
def adapter():
    return ScheduledTaskCmdlets()


def test_stop_task_builds_quoted_script(adapter):
    session = FakeSession("hv1", CommandResult())

    adapter.stop_task(session, "O'Brien Backup", "\\Contoso\\")

    script = session.scripts[0]
    assert "Import-Module ScheduledTasks" in script
    assert "$taskName = 'O''Brien Backup'" in script
    assert "$taskPath = '\\Contoso\\'" in script
    assert "Stop-ScheduledTask -TaskName $taskName -TaskPath $taskPath -ErrorAction Stop" in script
    assert ScheduledTaskCmdlets._HRESULT_SENTINEL in script


def test_unregister_task_suppresses_cmdlet_prompt(adapter):
    session = FakeSession("hv1", CommandResult())

    adapter.unregister_task(session, "Backup", "\\")

    assert "Unregister-ScheduledTask -TaskName $taskName -TaskPath $taskPath -Confirm:$false" in session.scripts[0]


def test_failure_raises_with_message_and_hresult(adapter):
    result = CommandResult(
        output=[f"{ScheduledTaskCmdlets._HRESULT_SENTINEL}-2147024891"],
        errors=["Access is denied."],
        had_errors=True,
    )
    session = FakeSession("hv1", result)

    with pytest.raises(TaskCommandError) as exc:
        adapter.start_task(session, "Backup", "\\")

    assert exc.value.message == "Access is denied."
    assert exc.value.hresult == -2147024891


def test_failure_without_error_text_uses_generic_message(adapter):
    session = FakeSession("hv1", CommandResult(had_errors=True))

    with pytest.raises(TaskCommandError) as exc:
        adapter.enable_task(session, "Backup", "\\")

    assert exc.value.message == "Enable-ScheduledTask failed on hv1"
    assert exc.value.hresult is None


def test_malformed_hresult_sentinel_is_ignored(adapter):
    result = CommandResult(
        output=[f"{ScheduledTaskCmdlets._HRESULT_SENTINEL}abc"],
        errors=["boom"],
        had_errors=True,
    )
    session = FakeSession("hv1", result)

    with pytest.raises(TaskCommandError) as exc:
        adapter.disable_task(session, "Backup", "\\")

    assert exc.value.hresult is None


def test_get_tasks_parses_json_array(adapter):
    payload = (
        '[{"TaskName":"Backup","TaskPath":"\\\\","State":"Ready","Description":null,"Author":"ops"},'
        '{"TaskName":"Cleanup","TaskPath":"\\\\Contoso\\\\","State":"Running"}]'
    )
    session = FakeSession("hv1", CommandResult(output=[payload]))

    tasks = adapter.get_tasks(session, task_path="\\")

    assert [task.task_name for task in tasks] == ["Backup", "Cleanup"]
    assert tasks[0].task_path == "\\"
    assert tasks[0].author == "ops"
    assert tasks[1].state == "Running"
    assert "-TaskPath $taskPath" in session.scripts[0]
    assert "-TaskName $taskName" not in session.scripts[0]


def test_get_tasks_accepts_single_object_and_empty_output(adapter):
    single = FakeSession("hv1", CommandResult(output=['{"TaskName":"Backup","TaskPath":"\\\\","State":"Disabled"}']))
    empty = FakeSession("hv1", CommandResult(output=[]))

    assert adapter.get_tasks(single)[0].state == "Disabled"
    assert adapter.get_tasks(empty) == []


def test_get_tasks_rejects_unparseable_output(adapter):
    session = FakeSession("hv1", CommandResult(output=["not json"]))

    with pytest.raises(TaskCommandError):
        adapter.get_tasks(session)


def test_register_task_includes_optional_parameters(adapter):
    session = FakeSession("hv1", CommandResult())

    adapter.register_task(
        session,
        "Backup",
        "\\",
        "<Task/>",
        user="CONTOSO\\svc",
        password="p@ss",
        force=True,
    )

    script = session.scripts[0]
    assert "-Xml $xml" in script
    assert "-User $user" in script
    assert "-Password $password" in script
    assert "-Force" in script
    assert "$xml = '<Task/>'" in script


def test_register_task_omits_unset_parameters(adapter):
    session = FakeSession("hv1", CommandResult())

    adapter.register_task(session, "Backup", "\\", "<Task/>")

    script = session.scripts[0]
    assert "-User" not in script
    assert "-Force" not in script
    assert "$user =" not in script


def test_clustered_commands_import_failover_clusters(adapter):
    session = FakeSession("cluster01", CommandResult())

    adapter.unregister_clustered_task(session, "cluster01", "Backup")

    script = session.scripts[0]
    assert "Import-Module FailoverClusters" in script
    assert "$cluster = 'cluster01'" in script
    assert "Unregister-ClusteredScheduledTask -Cluster $cluster -TaskName $taskName" in script


def test_get_clustered_tasks_parses_output(adapter):
    payload = '[{"TaskName":"Backup","TaskType":"AnyNode","CurrentOwner":"node1","Cluster":"cluster01"}]'
    session = FakeSession("cluster01", CommandResult(output=[payload]))

    tasks = adapter.get_clustered_tasks(session, "cluster01", task_type="AnyNode")

    assert tasks[0].task_type == "AnyNode"
    assert tasks[0].current_owner == "node1"
    assert "-TaskType $taskType" in session.scripts[0]


def test_register_clustered_task_with_resource(adapter):
    session = FakeSession("cluster01", CommandResult())

    adapter.register_clustered_task(
        session, "cluster01", "Backup", "<Task/>", "ResourceSpecific", resource="Cluster Disk 1"
    )

    script = session.scripts[0]
    assert "-Resource $resource" in script
    assert "$resource = 'Cluster Disk 1'" in script


def test_ps_literal_handles_types():
    assert ScheduledTaskCmdlets._ps_literal(True) == "$true"
    assert ScheduledTaskCmdlets._ps_literal(False) == "$false"
    assert ScheduledTaskCmdlets._ps_literal(3) == "3"
    assert ScheduledTaskCmdlets._ps_literal("it's") == "'it''s'"
