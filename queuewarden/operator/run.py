"""Run reconciler -- scheduling conditions, pod creation, completion.

Per pass the reconciler reads the run and its workspace and derives:

- ``Completed`` for runs that can never execute (no workspace label,
  workspace missing or unhealthy) and for runs whose pod has terminated;
- ``Attachable`` from the run's position in the workspace queue, held
  ``False`` while a privileged command awaits the workspace's approval and
  once the run has completed;
- ``ClientReady`` from the client annotation;

and creates the execution pod once the run reaches the head of the queue.
Completed runs are never touched again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from queuewarden.constants import CLIENT_ANNOTATION, CLIENT_READY, RUNNER_CONTAINER_NAME
from queuewarden.models.core import Pod
from queuewarden.models.enums import ConditionType, PodPhase, Reason
from queuewarden.models.meta import find_condition, is_condition_false, is_condition_true, set_condition
from queuewarden.models.run import Run, RunStatus
from queuewarden.models.workspace import Workspace
from queuewarden.operator.pod import build_pod
from queuewarden.store.base import AlreadyExistsError, NotFoundError

if TYPE_CHECKING:
    from queuewarden.store.base import EntityStore

logger = logging.getLogger(__name__)


class RunReconciler:
    def __init__(self, store: EntityStore, *, image: str) -> None:
        self._store = store
        self._image = image

    async def reconcile(self, namespace: str, name: str) -> None:
        try:
            run = await self._store.get(Run, namespace, name)
        except NotFoundError:
            logger.debug("Run %s/%s is gone, nothing to do", namespace, name)
            return

        if run.completed:
            return

        status = run.status.model_copy(deep=True)
        await self._reconcile_status(run, status)

        if status != run.status:
            run.status = status
            await self._store.update_status(run)

    async def _reconcile_status(self, run: Run, status: RunStatus) -> None:
        conditions = status.conditions

        if run.workspace is None:
            _complete(status, Reason.WORKSPACE_UNSPECIFIED, "Run has no workspace label")
            return

        try:
            workspace = await self._store.get(Workspace, run.namespace, run.workspace)
        except NotFoundError:
            _complete(status, Reason.WORKSPACE_NOT_FOUND, f"Workspace '{run.namespace}/{run.workspace}' not found")
            return

        if is_condition_false(workspace.status.conditions, ConditionType.HEALTHY):
            health = find_condition(workspace.status.conditions, ConditionType.HEALTHY)
            _complete(
                status,
                Reason.WORKSPACE_UNHEALTHY,
                f"Workspace '{run.namespace}/{run.workspace}' is unhealthy: {health.message if health else ''}",
            )
            return

        position = workspace.queue_position(run.name)
        held = position == 0 and workspace.requires_approval(run.spec.command) and not workspace.is_approved(run.name)
        if position < 0:
            set_condition(conditions, ConditionType.ATTACHABLE, False, Reason.UNSCHEDULED, "Not in workspace queue")
        elif position > 0:
            set_condition(
                conditions,
                ConditionType.ATTACHABLE,
                False,
                Reason.QUEUED,
                f"In workspace queue position {position}",
            )
        elif held:
            set_condition(
                conditions,
                ConditionType.ATTACHABLE,
                False,
                Reason.PENDING_APPROVAL,
                f"Command '{run.spec.command}' requires approval",
            )
        else:
            set_condition(conditions, ConditionType.ATTACHABLE, True, Reason.AT_HEAD_OF_QUEUE, "At head of queue")

        if run.metadata.annotations.get(CLIENT_ANNOTATION) == CLIENT_READY:
            set_condition(conditions, ConditionType.CLIENT_READY, True, Reason.CLIENT_ATTACHED, "Client attached")

        if position != 0 or held or not is_condition_true(workspace.status.conditions, ConditionType.HEALTHY):
            return

        pod = await self._get_or_create_pod(run, workspace)
        _observe_completion(pod, status)

    async def _get_or_create_pod(self, run: Run, workspace: Workspace) -> Pod:
        try:
            return await self._store.get(Pod, run.namespace, run.name)
        except NotFoundError:
            pass

        try:
            pod = await self._store.create(build_pod(run, workspace, self._image))
        except AlreadyExistsError:
            return await self._store.get(Pod, run.namespace, run.name)
        logger.info("Created pod %s/%s for %s", pod.namespace, pod.name, run.spec.command)
        return pod


def _observe_completion(pod: Pod, status: RunStatus) -> None:
    """Mark the run completed once its runner container has terminated."""
    container = pod.container_status(RUNNER_CONTAINER_NAME)
    terminated = container.state.terminated if container else None

    if terminated is not None:
        exit_code: int | None = terminated.exit_code
    elif pod.status.phase == PodPhase.SUCCEEDED:
        exit_code = 0
    elif pod.status.phase == PodPhase.FAILED:
        exit_code = None
    else:
        return

    status.exit_code = exit_code
    if exit_code == 0:
        _complete(status, Reason.POD_SUCCEEDED, "Pod succeeded")
    else:
        detail = f"exit code {exit_code}" if exit_code is not None else (pod.status.reason or "unknown reason")
        _complete(status, Reason.POD_FAILED, f"Pod failed: {detail}")


def _complete(status: RunStatus, reason: Reason, message: str) -> None:
    """Mark the run completed; a completed run is never attachable."""
    set_condition(status.conditions, ConditionType.COMPLETED, True, reason, message)
    set_condition(status.conditions, ConditionType.ATTACHABLE, False, Reason.COMPLETED, "Run completed")
