"""Core Kubernetes resources consumed by the operator and the launcher.

Only the fields queuewarden reads or writes are modelled; everything else is
dropped on parse (``extra="ignore"``).
"""

from __future__ import annotations

from pydantic import Field

from queuewarden.models.enums import ConditionStatus, PodPhase
from queuewarden.models.meta import KubeModel, KubeObject

# -- Pod ---------------------------------------------------------------------


class EnvVar(KubeModel):
    name: str
    value: str | None = None


class SecretEnvSource(KubeModel):
    name: str
    optional: bool | None = None


class EnvFromSource(KubeModel):
    secret_ref: SecretEnvSource | None = None


class VolumeMount(KubeModel):
    name: str
    mount_path: str
    read_only: bool | None = None


class Container(KubeModel):
    name: str
    image: str
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    env: list[EnvVar] = Field(default_factory=list)
    env_from: list[EnvFromSource] = Field(default_factory=list)
    volume_mounts: list[VolumeMount] = Field(default_factory=list)
    working_dir: str | None = None
    stdin: bool | None = None
    stdin_once: bool | None = None
    tty: bool | None = None


class PersistentVolumeClaimSource(KubeModel):
    claim_name: str


class ConfigMapSource(KubeModel):
    name: str


class Volume(KubeModel):
    name: str
    persistent_volume_claim: PersistentVolumeClaimSource | None = None
    config_map: ConfigMapSource | None = None


class PodSpec(KubeModel):
    containers: list[Container] = Field(default_factory=list)
    volumes: list[Volume] = Field(default_factory=list)
    service_account_name: str | None = None
    restart_policy: str = "Never"


class ContainerStateWaiting(KubeModel):
    reason: str | None = None
    message: str | None = None


class ContainerStateRunning(KubeModel):
    started_at: str | None = None


class ContainerStateTerminated(KubeModel):
    exit_code: int
    reason: str | None = None
    message: str | None = None


class ContainerState(KubeModel):
    waiting: ContainerStateWaiting | None = None
    running: ContainerStateRunning | None = None
    terminated: ContainerStateTerminated | None = None


class ContainerStatus(KubeModel):
    name: str
    ready: bool = False
    state: ContainerState = Field(default_factory=ContainerState)


class PodCondition(KubeModel):
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str | None = None
    message: str | None = None


class PodStatus(KubeModel):
    phase: PodPhase = PodPhase.PENDING
    conditions: list[PodCondition] = Field(default_factory=list)
    container_statuses: list[ContainerStatus] = Field(default_factory=list)
    message: str | None = None
    reason: str | None = None


class Pod(KubeObject):
    KIND = "Pod"
    PLURAL = "pods"

    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus = Field(default_factory=PodStatus)

    def container_status(self, name: str) -> ContainerStatus | None:
        for status in self.status.container_statuses:
            if status.name == name:
                return status
        return None

    @property
    def is_ready(self) -> bool:
        """Running, with the ``Ready`` pod condition true."""
        if self.status.phase != PodPhase.RUNNING:
            return False
        return any(c.type == "Ready" and c.status == ConditionStatus.TRUE for c in self.status.conditions)


# -- Payload and credentials -------------------------------------------------


class ConfigMap(KubeObject):
    KIND = "ConfigMap"
    PLURAL = "configmaps"

    data: dict[str, str] = Field(default_factory=dict)
    binary_data: dict[str, str] = Field(default_factory=dict, description="Base64-encoded values")


class Secret(KubeObject):
    KIND = "Secret"
    PLURAL = "secrets"

    data: dict[str, str] = Field(default_factory=dict)
    type: str | None = None


class ServiceAccount(KubeObject):
    KIND = "ServiceAccount"
    PLURAL = "serviceaccounts"


# -- Workspace prerequisites -------------------------------------------------


class ResourceRequirements(KubeModel):
    requests: dict[str, str] = Field(default_factory=dict)


class PersistentVolumeClaimSpec(KubeModel):
    access_modes: list[str] = Field(default_factory=lambda: ["ReadWriteOnce"])
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    storage_class_name: str | None = None


class PersistentVolumeClaim(KubeObject):
    KIND = "PersistentVolumeClaim"
    PLURAL = "persistentvolumeclaims"

    spec: PersistentVolumeClaimSpec = Field(default_factory=PersistentVolumeClaimSpec)


class PolicyRule(KubeModel):
    api_groups: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    verbs: list[str] = Field(default_factory=list)


class Role(KubeObject):
    KIND = "Role"
    API_VERSION = "rbac.authorization.k8s.io/v1"
    PLURAL = "roles"

    rules: list[PolicyRule] = Field(default_factory=list)


class RoleRef(KubeModel):
    api_group: str = "rbac.authorization.k8s.io"
    kind: str = "Role"
    name: str


class Subject(KubeModel):
    kind: str = "ServiceAccount"
    name: str
    namespace: str | None = None


class RoleBinding(KubeObject):
    KIND = "RoleBinding"
    API_VERSION = "rbac.authorization.k8s.io/v1"
    PLURAL = "rolebindings"

    role_ref: RoleRef
    subjects: list[Subject] = Field(default_factory=list)
