"""Unit tests for resource models, conditions and commands."""

from __future__ import annotations

import pytest

from queuewarden.constants import WORKSPACE_LABEL
from queuewarden.models import (
    ConditionStatus,
    ConditionType,
    ObjectMeta,
    Reason,
    Run,
    RunCommand,
    RunSpec,
    UnsupportedCommandError,
    Workspace,
    find_condition,
    is_condition_false,
    is_condition_true,
    set_condition,
)
from queuewarden.models.commands import entrypoint, entrypoint_line, parse_command
from queuewarden.models.core import Pod


def _run(**labels: str) -> Run:
    return Run(metadata=ObjectMeta(name="run-1", labels=labels), spec=RunSpec(command=RunCommand.PLAN, config_map="run-1"))


# -- Conditions --------------------------------------------------------------


def test_set_condition_reports_changes() -> None:
    conditions = []
    assert set_condition(conditions, ConditionType.HEALTHY, True, Reason.ALL_RESOURCES_FOUND) is True
    assert set_condition(conditions, ConditionType.HEALTHY, True, Reason.ALL_RESOURCES_FOUND) is False
    assert len(conditions) == 1
    assert conditions[0].status == ConditionStatus.TRUE


def test_transition_time_moves_only_on_status_change() -> None:
    conditions = []
    set_condition(conditions, ConditionType.ATTACHABLE, False, Reason.QUEUED, "In workspace queue position 2")
    first = find_condition(conditions, ConditionType.ATTACHABLE)
    stamp = first.last_transition_time

    # Message change, same status.
    assert set_condition(conditions, ConditionType.ATTACHABLE, False, Reason.QUEUED, "In workspace queue position 1")
    assert first.last_transition_time == stamp
    assert first.message == "In workspace queue position 1"

    assert set_condition(conditions, ConditionType.ATTACHABLE, True, Reason.AT_HEAD_OF_QUEUE)
    assert first.status == ConditionStatus.TRUE
    assert first.last_transition_time is not None


def test_condition_predicates() -> None:
    conditions = []
    assert not is_condition_true(conditions, ConditionType.HEALTHY)
    assert not is_condition_false(conditions, ConditionType.HEALTHY)

    set_condition(conditions, ConditionType.HEALTHY, False, Reason.MISSING_RESOURCE)
    assert is_condition_false(conditions, ConditionType.HEALTHY)
    assert not is_condition_true(conditions, ConditionType.HEALTHY)


# -- Resources ---------------------------------------------------------------


def test_manifest_uses_wire_names() -> None:
    run = _run(**{WORKSPACE_LABEL: "ws"})
    manifest = run.to_manifest()

    assert manifest["apiVersion"] == "queuewarden.io/v1alpha1"
    assert manifest["kind"] == "Run"
    assert manifest["spec"]["configMap"] == "run-1"
    assert manifest["spec"]["configMapKey"] == "config.tar.gz"
    assert "resourceVersion" not in manifest["metadata"]


def test_from_manifest_ignores_unknown_fields() -> None:
    workspace = Workspace.from_manifest({
        "apiVersion": "queuewarden.io/v1alpha1",
        "kind": "Workspace",
        "metadata": {"name": "ws", "namespace": "dev", "resourceVersion": "42", "managedFields": []},
        "spec": {"secretName": "creds", "cache": {"size": "5Gi"}},
        "status": {"queue": ["a", "b"]},
    })

    assert workspace.key == ("dev", "ws")
    assert workspace.metadata.resource_version == "42"
    assert workspace.spec.secret_name == "creds"
    assert workspace.spec.cache.size == "5Gi"
    assert workspace.queue_position("b") == 1
    assert workspace.queue_position("c") == -1


def test_run_workspace_comes_from_label() -> None:
    assert _run(**{WORKSPACE_LABEL: "ws"}).workspace == "ws"
    assert _run().workspace is None


def test_owner_reference_matches_uid() -> None:
    run = _run()
    run.metadata.uid = "abc"
    pod = Pod(metadata=ObjectMeta(name="run-1", owner_references=[run.owner_reference()]))
    assert pod.is_owned_by(run)

    run.metadata.uid = "other"
    assert not pod.is_owned_by(run)


# -- Commands ----------------------------------------------------------------


def test_parse_command() -> None:
    assert parse_command("apply") is RunCommand.APPLY
    assert parse_command("force-unlock") is RunCommand.FORCE_UNLOCK


def test_parse_command_rejects_unknown() -> None:
    with pytest.raises(UnsupportedCommandError, match="Unsupported command 'fmt'"):
        parse_command("fmt")


def test_entrypoint_tool_commands() -> None:
    assert entrypoint(RunCommand.PLAN, ["-out", "plan.tfplan"]) == ["terraform", "plan", "-out", "plan.tfplan"]
    assert entrypoint(RunCommand.INIT, []) == ["terraform", "init"]


def test_entrypoint_shell_joins_args() -> None:
    assert entrypoint(RunCommand.SH, ["echo", "hello", "&&", "ls"]) == ["sh", "-c", "echo hello && ls"]
    assert entrypoint(RunCommand.SH, []) == ["sh"]
    assert entrypoint_line(RunCommand.SH, ["echo", "hi"]) == "sh -c 'echo hi'"
