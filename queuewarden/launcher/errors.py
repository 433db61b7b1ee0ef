"""Launcher error taxonomy.

Every failure ``Launcher.run`` can report is a ``LauncherError``:

- ``AdmissionError``: the run could not be submitted;
- ``PhaseTimeoutError`` subclasses: a phase did not finish in time, each
  naming the phase;
- unrecoverable state: the workspace or the pod will never let the run
  execute;
- ``ExitError``: the run executed and exited nonzero.

Transient store failures surface as ``queuewarden.store.base.StoreError``.
"""

from __future__ import annotations


class LauncherError(Exception):
    """Base class for launcher failures."""


# -- Admission ---------------------------------------------------------------


class AdmissionError(LauncherError):
    """The run was rejected or could not be submitted."""


# -- Timeouts ----------------------------------------------------------------


class PhaseTimeoutError(LauncherError, TimeoutError):
    """A launcher phase did not complete within its timeout."""

    phase: str = ""

    def __init__(self, timeout: float, detail: str = "") -> None:
        message = f"Timed out after {timeout:g}s waiting for {self.phase}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.timeout = timeout


class EnqueueTimeoutError(PhaseTimeoutError):
    phase = "the run to be enqueued"


class QueueTimeoutError(PhaseTimeoutError):
    phase = "the run to reach the head of the queue"


class ReconcileTimeoutError(PhaseTimeoutError):
    phase = "the run to be reconciled"


class ReadyTimeoutError(PhaseTimeoutError):
    phase = "the pod to be running and ready"


class ApprovalTimeoutError(PhaseTimeoutError):
    phase = "the workspace to approve the run"


class ExitRelayTimeoutError(PhaseTimeoutError):
    phase = "the exit code"


# -- Unrecoverable state -----------------------------------------------------


class WorkspaceNotFoundError(LauncherError):
    """The workspace does not exist."""


class WorkspaceUnhealthyError(LauncherError):
    """The workspace is missing its service account or secret."""


class WorkspaceUnspecifiedError(LauncherError):
    """The run does not name a workspace."""


class PodFailedError(LauncherError):
    """The execution pod can never become ready."""


class AttachError(LauncherError):
    """The client could not connect to the pod."""


# -- Exit --------------------------------------------------------------------


class ExitRelayError(LauncherError):
    """The exit code could not be retrieved."""


class ExitError(LauncherError):
    """The run executed and exited nonzero."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Command exited with code {code}")
        self.code = code
