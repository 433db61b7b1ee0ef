"""Resource envelope shared by every entity-store object.

Models serialise to Kubernetes wire JSON: field names are camelCase aliases
(``resourceVersion``, ``lastTransitionTime`` ...) and ``apiVersion`` / ``kind``
are class-level constants added by ``to_manifest``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from queuewarden.models.enums import ConditionStatus, ConditionType


def utcnow() -> datetime:
    """Current time truncated to whole seconds (RFC 3339 precision)."""
    return datetime.now(tz=UTC).replace(microsecond=0)


class KubeModel(BaseModel):
    """Base for all wire models: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# -- Metadata ----------------------------------------------------------------


class OwnerReference(KubeModel):
    api_version: str
    kind: str
    name: str
    uid: str | None = None
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class ObjectMeta(KubeModel):
    name: str
    namespace: str = "default"
    uid: str | None = None
    resource_version: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list)
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


class KubeObject(KubeModel):
    """A namespaced resource with identity ``(namespace, name)``."""

    KIND: ClassVar[str] = ""
    API_VERSION: ClassVar[str] = "v1"
    PLURAL: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> tuple[str, str]:
        return (self.metadata.namespace, self.metadata.name)

    def to_manifest(self) -> dict[str, Any]:
        """Serialise to a Kubernetes manifest (camelCase, no nulls)."""
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return {"apiVersion": self.API_VERSION, "kind": self.KIND, **body}

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> Self:
        return cls.model_validate(data)

    def owner_reference(self) -> OwnerReference:
        """Reference marking this object as the controlling owner of another."""
        return OwnerReference(
            api_version=self.API_VERSION,
            kind=self.KIND,
            name=self.name,
            uid=self.metadata.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def is_owned_by(self, owner: KubeObject) -> bool:
        return any(
            ref.kind == owner.KIND and ref.name == owner.name and (ref.uid is None or ref.uid == owner.metadata.uid)
            for ref in self.metadata.owner_references
        )


# -- Conditions --------------------------------------------------------------


class Condition(KubeModel):
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


def find_condition(conditions: list[Condition], condition_type: str | ConditionType) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def is_condition_true(conditions: list[Condition], condition_type: str | ConditionType) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def is_condition_false(conditions: list[Condition], condition_type: str | ConditionType) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.FALSE


def set_condition(
    conditions: list[Condition],
    condition_type: str | ConditionType,
    status: bool | ConditionStatus,
    reason: str = "",
    message: str = "",
) -> bool:
    """Set a condition in place.  Returns ``True`` if anything changed.

    ``last_transition_time`` only moves when the status flips, so setting the
    same condition twice is a no-op.
    """
    if isinstance(status, bool):
        status = ConditionStatus.TRUE if status else ConditionStatus.FALSE

    existing = find_condition(conditions, condition_type)
    if existing is None:
        conditions.append(
            Condition(
                type=str(condition_type),
                status=status,
                reason=str(reason),
                message=message,
                last_transition_time=utcnow(),
            )
        )
        return True

    changed = False
    if existing.status != status:
        existing.status = status
        existing.last_transition_time = utcnow()
        changed = True
    if existing.reason != reason:
        existing.reason = str(reason)
        changed = True
    if existing.message != message:
        existing.message = message
        changed = True
    return changed
