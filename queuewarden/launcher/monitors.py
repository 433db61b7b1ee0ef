"""Launcher monitors -- wait until a submitted run can be connected to.

Four watchers run concurrently in one task group and report into a single
bounded memory object stream:

- workspace watcher: the workspace exists (single get);
- queue watcher: the run is enqueued in time, then reaches the head of the
  queue in time;
- run watcher: the operator reconciles the run in time, the run does not
  complete with a failure reason, a privileged run is approved in time, and
  the pod is ready in time once the run is attachable;
- pod watcher: the pod becomes running and ready, or fails unrecoverably.

Watchers never raise out of the task group; failures are sent as values so
the first one can be re-raised unwrapped once the group is cancelled.  Each
watcher tracks its own deadlines, so a long wait in the queue never eats into
the budget of the other phases.
"""

from __future__ import annotations

import math
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import anyio
from loguru import logger

from queuewarden.constants import RUNNER_CONTAINER_NAME
from queuewarden.launcher.errors import (
    ApprovalTimeoutError,
    EnqueueTimeoutError,
    LauncherError,
    PodFailedError,
    QueueTimeoutError,
    ReadyTimeoutError,
    ReconcileTimeoutError,
    WorkspaceNotFoundError,
    WorkspaceUnhealthyError,
    WorkspaceUnspecifiedError,
)
from queuewarden.models.core import Pod
from queuewarden.models.enums import ConditionStatus, ConditionType, EventType, PodPhase, Reason
from queuewarden.models.meta import find_condition, is_condition_true
from queuewarden.models.run import Run
from queuewarden.models.workspace import Workspace
from queuewarden.store.base import NotFoundError, StoreError

if TYPE_CHECKING:
    from anyio.abc import ObjectSendStream

    from queuewarden.launcher.options import LauncherOptions
    from queuewarden.store.base import EntityStore, WatchEvent

FATAL_WAITING_REASONS = frozenset({
    "ErrImagePull",
    "ImagePullBackOff",
    "InvalidImageName",
    "CreateContainerConfigError",
    "CreateContainerError",
    "CrashLoopBackOff",
})
"""Container waiting reasons the pod does not recover from on its own."""


class SignalKind(StrEnum):
    WORKSPACE_EXISTS = "workspace-exists"
    POD_READY = "pod-ready"


@dataclass
class Signal:
    kind: SignalKind
    pod: Pod | None = None


Message = Signal | Exception
Watcher = Callable[["EntityStore", "LauncherOptions", "ObjectSendStream[Message]"], Awaitable[None]]


async def _next_event(events: AsyncIterator[WatchEvent[Any]], deadline: float) -> WatchEvent[Any] | None:
    """Next event, or ``None`` if *deadline* passes first."""
    with anyio.CancelScope(deadline=deadline):
        try:
            return await anext(events)
        except StopAsyncIteration:
            msg = "Watch ended unexpectedly"
            raise StoreError(msg) from None
    return None


# -- Watchers ----------------------------------------------------------------


async def watch_workspace(store: EntityStore, options: LauncherOptions, send: ObjectSendStream[Message]) -> None:
    try:
        await store.get(Workspace, options.namespace, options.workspace)
    except NotFoundError:
        msg = f"Workspace '{options.namespace}/{options.workspace}' not found"
        raise WorkspaceNotFoundError(msg) from None
    await send.send(Signal(SignalKind.WORKSPACE_EXISTS))


async def watch_queue(store: EntityStore, options: LauncherOptions, send: ObjectSendStream[Message]) -> None:
    enqueue_deadline = anyio.current_time() + options.timeout_enqueue
    queue_deadline = math.inf
    position: int | None = None

    async with aclosing(store.watch(Workspace, options.namespace, name=options.workspace)) as events:
        while True:
            deadline = enqueue_deadline if position is None else queue_deadline
            event = await _next_event(events, deadline)
            if event is None:
                if position is None:
                    raise EnqueueTimeoutError(options.timeout_enqueue)
                raise QueueTimeoutError(options.timeout_queue, f"still at position {position}")

            if event.type == EventType.DELETED:
                msg = f"Workspace '{options.namespace}/{options.workspace}' was deleted"
                raise WorkspaceNotFoundError(msg)

            current = event.object.queue_position(options.run_name)
            if current < 0:
                continue
            if position is None:
                queue_deadline = anyio.current_time() + options.timeout_queue
            if current != position:
                logger.info("Queued: position {} in workspace {}", current, options.workspace)
                position = current
            if position == 0:
                return


_FAILURES: dict[str, type[LauncherError]] = {
    Reason.WORKSPACE_NOT_FOUND: WorkspaceNotFoundError,
    Reason.WORKSPACE_UNSPECIFIED: WorkspaceUnspecifiedError,
    Reason.WORKSPACE_UNHEALTHY: WorkspaceUnhealthyError,
}


async def watch_run(store: EntityStore, options: LauncherOptions, send: ObjectSendStream[Message]) -> None:
    reconcile_deadline = anyio.current_time() + options.timeout_reconcile
    ready_deadline = approval_deadline = math.inf
    reconciled = attachable = False

    async with aclosing(store.watch(Run, options.namespace, name=options.run_name)) as events:
        while True:
            if attachable:
                deadline = ready_deadline
            elif not reconciled:
                deadline = reconcile_deadline
            else:
                deadline = approval_deadline

            event = await _next_event(events, deadline)
            if event is None:
                if attachable:
                    raise ReadyTimeoutError(options.timeout_pod)
                if reconciled:
                    raise ApprovalTimeoutError(options.timeout_queue)
                raise ReconcileTimeoutError(options.timeout_reconcile)

            if event.type == EventType.DELETED:
                msg = f"Run '{options.namespace}/{options.run_name}' was deleted"
                raise LauncherError(msg)

            run: Run = event.object
            conditions = run.status.conditions
            if conditions:
                reconciled = True

            completed = find_condition(conditions, ConditionType.COMPLETED)
            if completed is not None and completed.status == ConditionStatus.TRUE:
                error = _FAILURES.get(completed.reason)
                if error is not None:
                    raise error(completed.message)
                # Executed already; the pod watcher and the exit relay take it from here.
                return

            if attachable:
                continue
            if is_condition_true(conditions, ConditionType.ATTACHABLE):
                attachable = True
                ready_deadline = anyio.current_time() + options.timeout_pod
                continue
            held = find_condition(conditions, ConditionType.ATTACHABLE)
            if held is not None and held.reason == Reason.PENDING_APPROVAL and approval_deadline == math.inf:
                logger.info("Run {} is waiting for approval: {}", options.run_name, held.message)
                approval_deadline = anyio.current_time() + options.timeout_queue


async def watch_pod(store: EntityStore, options: LauncherOptions, send: ObjectSendStream[Message]) -> None:
    async with aclosing(store.watch(Pod, options.namespace, name=options.run_name)) as events:
        async for event in events:
            if event.type == EventType.DELETED:
                msg = f"Pod '{options.namespace}/{options.run_name}' was deleted"
                raise PodFailedError(msg)

            pod: Pod = event.object
            phase = pod.status.phase
            if phase == PodPhase.UNKNOWN:
                msg = f"Pod '{pod.namespace}/{pod.name}' is in phase Unknown: {pod.status.message or ''}"
                raise PodFailedError(msg)

            container = pod.container_status(RUNNER_CONTAINER_NAME)
            waiting = container.state.waiting if container else None
            if waiting is not None and waiting.reason in FATAL_WAITING_REASONS:
                msg = f"Pod '{pod.namespace}/{pod.name}' cannot start: {waiting.reason}: {waiting.message or ''}"
                raise PodFailedError(msg)

            if phase in (PodPhase.SUCCEEDED, PodPhase.FAILED):
                if options.interactive:
                    msg = f"Pod '{pod.namespace}/{pod.name}' exited ({phase}) before the client attached"
                    raise PodFailedError(msg)
                # Logs remain readable after exit.
                await send.send(Signal(SignalKind.POD_READY, pod))
                return

            if pod.is_ready:
                await send.send(Signal(SignalKind.POD_READY, pod))
                return

    msg = "Pod watch ended unexpectedly"
    raise StoreError(msg)


WATCHERS: tuple[Watcher, ...] = (watch_workspace, watch_queue, watch_run, watch_pod)


# -- Merge -------------------------------------------------------------------


async def _guard(watcher: Watcher, store: EntityStore, options: LauncherOptions, send: ObjectSendStream[Message]) -> None:
    async with send:
        try:
            await watcher(store, options, send)
        except Exception as exc:  # forwarded to the merge loop
            await send.send(exc)


async def _merge(receive: AsyncIterator[Message]) -> Pod:
    workspace_exists = False
    pod: Pod | None = None
    async for message in receive:
        if isinstance(message, Exception):
            raise message
        if message.kind == SignalKind.WORKSPACE_EXISTS:
            workspace_exists = True
        else:
            pod = message.pod
        if workspace_exists and pod is not None:
            return pod
    msg = "Monitors stopped before the pod was ready"
    raise LauncherError(msg)


async def monitor(store: EntityStore, options: LauncherOptions, watchers: tuple[Watcher, ...] = WATCHERS) -> Pod:
    """Block until the run's pod is ready and the workspace exists.

    Returns the ready pod.  Raises the first fatal error any watcher reports.
    """
    send, receive = anyio.create_memory_object_stream[Message](max_buffer_size=len(watchers))
    result: Pod | None = None
    error: Exception | None = None

    with receive:
        async with anyio.create_task_group() as tg:
            async with send:
                for watcher in watchers:
                    tg.start_soon(_guard, watcher, store, options, send.clone())
            try:
                result = await _merge(receive)
            except Exception as exc:
                error = exc
            tg.cancel_scope.cancel()

    if error is not None:
        raise error
    assert result is not None  # noqa: S101
    logger.debug("Pod {}/{} is ready", result.namespace, result.name)
    return result
