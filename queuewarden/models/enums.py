"""Shared enumerations used across the operator and the launcher."""

from __future__ import annotations

from enum import StrEnum

# -- Conditions --------------------------------------------------------------


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(StrEnum):
    """Condition types stamped on workspaces and runs."""

    # Workspace
    HEALTHY = "Healthy"
    READY = "Ready"

    # Run
    COMPLETED = "Completed"
    ATTACHABLE = "Attachable"
    CLIENT_READY = "ClientReady"


class Reason(StrEnum):
    """Condition reasons."""

    # Workspace health / readiness
    MISSING_RESOURCE = "MissingResource"
    ALL_RESOURCES_FOUND = "AllResourcesFound"
    PREREQUISITES_READY = "PrerequisitesReady"

    # Run scheduling
    UNSCHEDULED = "Unscheduled"
    QUEUED = "Queued"
    AT_HEAD_OF_QUEUE = "AtHeadOfQueue"
    CLIENT_ATTACHED = "ClientAttached"
    PENDING_APPROVAL = "PendingApproval"

    # Run completion
    WORKSPACE_UNSPECIFIED = "WorkspaceUnspecified"
    WORKSPACE_NOT_FOUND = "WorkspaceNotFound"
    WORKSPACE_UNHEALTHY = "WorkspaceUnhealthy"
    POD_SUCCEEDED = "PodSucceeded"
    POD_FAILED = "PodFailed"
    COMPLETED = "Completed"
    """Reason for ``Attachable=False`` once a run has completed."""


# -- Pods --------------------------------------------------------------------


class PodPhase(StrEnum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


# -- Watch -------------------------------------------------------------------


class EventType(StrEnum):
    """Entity store watch event types."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
