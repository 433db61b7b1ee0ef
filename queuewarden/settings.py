"""Service configuration loaded from QW_* environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from queuewarden.constants import DEFAULT_CACHE_SIZE


class QueueWardenSettings(BaseSettings):
    """Queuewarden settings shared by the operator and the launcher.

    All fields are read from environment variables with the ``QW_`` prefix.
    For example, ``QW_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="QW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Cluster ---------------------------------------------------------------
    namespace: str = "default"
    kube_context: str | None = None
    """Kubeconfig context.  Ignored when running in-cluster."""

    # -- Operator --------------------------------------------------------------
    runner_image: str = "hashicorp/terraform:1.9"
    """Image of the execution pod.  Must ship ``sh`` and ``tar``."""

    reconcile_workers: int = 4
    """Concurrent reconciliations per controller (never for the same key)."""

    backoff_base: float = 0.5
    backoff_max: float = 60.0
    """Bounds (seconds) of the exponential retry delay after a failed reconcile."""

    default_cache_size: str = DEFAULT_CACHE_SIZE

    # -- Launcher --------------------------------------------------------------
    timeout_enqueue: float = 10.0
    """Seconds a run may wait before it appears in the workspace queue."""

    timeout_queue: float = 3600.0
    """Seconds a run may wait in the queue before reaching its head."""

    timeout_reconcile: float = 10.0
    """Seconds to wait for the operator to stamp a first condition on a run."""

    timeout_pod: float = 60.0
    """Seconds between becoming attachable and the pod being running and ready."""

    timeout_exit: float = 10.0
    """Grace period for the exit code after attach / log streaming returns."""

    handshake_timeout: float = 10.0
    """Seconds the execution pod waits for the client handshake."""


@lru_cache(maxsize=1)
def get_settings() -> QueueWardenSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return QueueWardenSettings()
