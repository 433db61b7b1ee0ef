"""Workspace resource.

A workspace is a named execution context on the cluster.  It owns a cache
volume and credentials, and serialises the runs submitted against it through
``status.queue``: the head of the queue is the only run allowed to execute.
"""

from __future__ import annotations

from pydantic import Field

from queuewarden.constants import APPROVAL_ANNOTATION_PREFIX, APPROVED, GROUP_VERSION
from queuewarden.models.meta import Condition, KubeModel, KubeObject


class WorkspaceCache(KubeModel):
    size: str | None = None
    """Requested cache capacity; the operator default when unset."""

    storage_class: str | None = None


class WorkspaceVCS(KubeModel):
    repository: str | None = None
    branch: str | None = None
    working_dir: str | None = None
    """Path of the configuration relative to the repository root."""


class WorkspaceSpec(KubeModel):
    cache: WorkspaceCache = Field(default_factory=WorkspaceCache)
    service_account_name: str | None = None
    secret_name: str | None = None
    privileged_commands: list[str] = Field(default_factory=list)
    """Commands that only run once the workspace approves the run."""

    vcs: WorkspaceVCS = Field(default_factory=WorkspaceVCS)


class WorkspaceStatus(KubeModel):
    queue: list[str] = Field(default_factory=list, description="Pending run names, head runs next")
    conditions: list[Condition] = Field(default_factory=list)


class Workspace(KubeObject):
    KIND = "Workspace"
    API_VERSION = GROUP_VERSION
    PLURAL = "workspaces"

    spec: WorkspaceSpec = Field(default_factory=WorkspaceSpec)
    status: WorkspaceStatus = Field(default_factory=WorkspaceStatus)

    def queue_position(self, run_name: str) -> int:
        """Index of *run_name* in the queue, ``-1`` if absent."""
        try:
            return self.status.queue.index(run_name)
        except ValueError:
            return -1

    def requires_approval(self, command: str) -> bool:
        return command in self.spec.privileged_commands

    def is_approved(self, run_name: str) -> bool:
        return self.metadata.annotations.get(approval_annotation(run_name)) == APPROVED


def approval_annotation(run_name: str) -> str:
    return f"{APPROVAL_ANNOTATION_PREFIX}{run_name}"
