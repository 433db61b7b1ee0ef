"""Prerequisite resources owned by a workspace.

Every workspace gets a cache volume claim, a namespaced role granting read
access to queuewarden resources, and a binding of that role to the
workspace's service account.  All three carry an owner reference to the
workspace so they are garbage-collected with it.
"""

from __future__ import annotations

from queuewarden.constants import API_GROUP, COMPONENT_LABEL, WORKSPACE_LABEL
from queuewarden.models.core import (
    PersistentVolumeClaim,
    PersistentVolumeClaimSpec,
    PolicyRule,
    ResourceRequirements,
    Role,
    RoleBinding,
    RoleRef,
    Subject,
)
from queuewarden.models.meta import ObjectMeta
from queuewarden.models.workspace import Workspace

DEFAULT_SERVICE_ACCOUNT = "default"


def cache_claim_name(workspace_name: str) -> str:
    return workspace_name


def role_name(workspace_name: str) -> str:
    return f"queuewarden-workspace-{workspace_name}"


def _meta(workspace: Workspace, name: str) -> ObjectMeta:
    return ObjectMeta(
        name=name,
        namespace=workspace.namespace,
        labels={COMPONENT_LABEL: "workspace", WORKSPACE_LABEL: workspace.name},
        owner_references=[workspace.owner_reference()],
    )


def build_cache_claim(workspace: Workspace, default_size: str) -> PersistentVolumeClaim:
    cache = workspace.spec.cache
    return PersistentVolumeClaim(
        metadata=_meta(workspace, cache_claim_name(workspace.name)),
        spec=PersistentVolumeClaimSpec(
            resources=ResourceRequirements(requests={"storage": cache.size or default_size}),
            storage_class_name=cache.storage_class or None,
        ),
    )


def build_role(workspace: Workspace) -> Role:
    return Role(
        metadata=_meta(workspace, role_name(workspace.name)),
        rules=[PolicyRule(api_groups=[API_GROUP], resources=["*"], verbs=["get", "list", "watch"])],
    )


def build_role_binding(workspace: Workspace, role: Role) -> RoleBinding:
    subject = workspace.spec.service_account_name or DEFAULT_SERVICE_ACCOUNT
    return RoleBinding(
        metadata=_meta(workspace, role_name(workspace.name)),
        role_ref=RoleRef(name=role.name),
        subjects=[Subject(name=subject, namespace=workspace.namespace)],
    )
