"""Run resource -- a single execution request queued against a workspace."""

from __future__ import annotations

from pydantic import Field

from queuewarden.constants import DEFAULT_CONFIG_MAP_KEY, GROUP_VERSION, WORKSPACE_LABEL
from queuewarden.models.commands import RunCommand
from queuewarden.models.enums import ConditionType
from queuewarden.models.meta import Condition, KubeModel, KubeObject, is_condition_true


class RunSpec(KubeModel):
    command: RunCommand
    args: list[str] = Field(default_factory=list)
    config_map: str
    """Name of the ConfigMap holding the configuration tarball."""

    config_map_key: str = DEFAULT_CONFIG_MAP_KEY
    handshake: bool = False
    """Interactive run: the pod waits for the client handshake before executing."""

    handshake_timeout: float = 10.0


class RunStatus(KubeModel):
    conditions: list[Condition] = Field(default_factory=list)
    exit_code: int | None = None


class Run(KubeObject):
    KIND = "Run"
    API_VERSION = GROUP_VERSION
    PLURAL = "runs"

    spec: RunSpec
    status: RunStatus = Field(default_factory=RunStatus)

    @property
    def workspace(self) -> str | None:
        """Owning workspace name, from the workspace label."""
        return self.metadata.labels.get(WORKSPACE_LABEL)

    @property
    def completed(self) -> bool:
        return is_condition_true(self.status.conditions, ConditionType.COMPLETED)
