"""Resource models for queuewarden."""

from queuewarden.models.commands import SUPPORTED_COMMANDS, RunCommand, UnsupportedCommandError
from queuewarden.models.core import (
    ConfigMap,
    Container,
    ContainerState,
    ContainerStateTerminated,
    ContainerStatus,
    PersistentVolumeClaim,
    Pod,
    PodCondition,
    PodStatus,
    Role,
    RoleBinding,
    Secret,
    ServiceAccount,
)
from queuewarden.models.enums import (
    ConditionStatus,
    ConditionType,
    EventType,
    PodPhase,
    Reason,
)
from queuewarden.models.meta import (
    Condition,
    KubeObject,
    ObjectMeta,
    OwnerReference,
    find_condition,
    is_condition_false,
    is_condition_true,
    set_condition,
)
from queuewarden.models.run import Run, RunSpec, RunStatus
from queuewarden.models.workspace import Workspace, WorkspaceCache, WorkspaceSpec, WorkspaceStatus, approval_annotation

__all__ = [
    "SUPPORTED_COMMANDS",
    "Condition",
    "ConditionStatus",
    "ConditionType",
    "ConfigMap",
    "Container",
    "ContainerState",
    "ContainerStateTerminated",
    "ContainerStatus",
    "EventType",
    "KubeObject",
    "ObjectMeta",
    "OwnerReference",
    "PersistentVolumeClaim",
    "Pod",
    "PodCondition",
    "PodPhase",
    "PodStatus",
    "Reason",
    "Role",
    "RoleBinding",
    "Run",
    "RunCommand",
    "RunSpec",
    "RunStatus",
    "Secret",
    "ServiceAccount",
    "UnsupportedCommandError",
    "Workspace",
    "WorkspaceCache",
    "WorkspaceSpec",
    "WorkspaceStatus",
    "approval_annotation",
    "find_condition",
    "is_condition_false",
    "is_condition_true",
    "set_condition",
]
