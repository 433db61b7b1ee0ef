"""Launcher options -- everything ``Launcher.run`` needs, resolved up front."""

from __future__ import annotations

import secrets
import string
from pathlib import Path

from pydantic import BaseModel, Field

from queuewarden.launcher.environment import read_marker
from queuewarden.settings import QueueWardenSettings

_NAME_ALPHABET = string.ascii_lowercase + string.digits


def generate_run_name() -> str:
    """Unique run name: ``run-`` followed by five random characters."""
    suffix = "".join(secrets.choice(_NAME_ALPHABET) for _ in range(5))
    return f"run-{suffix}"


class LauncherOptions(BaseModel):
    """Explicit launcher configuration.

    Built once (usually by ``from_settings``) and passed to every launcher
    component; nothing below the CLI reads the environment.
    """

    command: str
    args: list[str] = Field(default_factory=list)

    namespace: str = "default"
    workspace: str = "default"
    path: Path = Field(default_factory=Path.cwd)
    """Configuration directory archived and shipped to the pod."""

    run_name: str = Field(default_factory=generate_run_name)

    interactive: bool = False
    """Attach to the pod's terminal instead of streaming its logs."""

    timeout_enqueue: float = 10.0
    timeout_queue: float = 3600.0
    timeout_reconcile: float = 10.0
    timeout_pod: float = 60.0
    timeout_exit: float = 10.0
    handshake_timeout: float = 10.0

    @classmethod
    def from_settings(
        cls,
        settings: QueueWardenSettings,
        command: str,
        args: list[str] | None = None,
        *,
        path: Path | None = None,
        namespace: str | None = None,
        workspace: str | None = None,
        interactive: bool = False,
    ) -> LauncherOptions:
        """Resolve options from settings and the directory's marker file.

        Explicit *namespace* / *workspace* win over the marker file, which
        wins over settings.
        """
        path = path or Path.cwd()
        marker = read_marker(path)
        if marker is not None:
            marker_namespace, marker_workspace = marker
        else:
            marker_namespace, marker_workspace = settings.namespace, "default"

        return cls(
            command=command,
            args=args or [],
            namespace=namespace or marker_namespace,
            workspace=workspace or marker_workspace,
            path=path,
            interactive=interactive,
            timeout_enqueue=settings.timeout_enqueue,
            timeout_queue=settings.timeout_queue,
            timeout_reconcile=settings.timeout_reconcile,
            timeout_pod=settings.timeout_pod,
            timeout_exit=settings.timeout_exit,
            handshake_timeout=settings.handshake_timeout,
        )
