"""Well-known names shared by the operator, the execution pod and the launcher."""

from __future__ import annotations

API_GROUP = "queuewarden.io"
API_VERSION = "v1alpha1"
GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

RUNNER_CONTAINER_NAME = "runner"
"""Designated execution container in every run pod."""

HANDSHAKE_TOKEN = "queuewarden-handshake-7f3c2a"  # noqa: S105
"""Sentinel exchanged between the pod entrypoint and an attaching client."""

WORKSPACE_LABEL = f"{API_GROUP}/workspace"
RUN_LABEL = f"{API_GROUP}/run"
COMPONENT_LABEL = "app.kubernetes.io/component"

CLIENT_ANNOTATION = f"{API_GROUP}/client"
CLIENT_READY = "Ready"

APPROVAL_ANNOTATION_PREFIX = f"approvals.{API_GROUP}/"
"""Workspace annotation prefix; ``<prefix><run name>: approved`` releases a privileged run."""
APPROVED = "approved"

DEFAULT_CONFIG_MAP_KEY = "config.tar.gz"
DEFAULT_CACHE_SIZE = "1Gi"

PAYLOAD_MOUNT_PATH = "/payload"
CACHE_MOUNT_PATH = "/cache"
WORKING_DIR = "/workspace"

MARKER_FILE = ".queuewarden"
"""Per-directory file holding the default ``namespace/workspace``."""
