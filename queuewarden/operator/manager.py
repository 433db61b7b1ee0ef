"""Controller manager -- turns store watches into reconcile calls.

A ``Controller`` owns a keyed work queue in front of one reconciler:

- a key is queued at most once while it waits;
- a key is never reconciled by two workers at the same time; events that
  arrive while it is being reconciled queue it again afterwards;
- failures are retried after an exponential backoff, capped at
  ``backoff_max``; ``ConflictError`` is retried immediately since it only
  means the object changed under us.

The ``Manager`` watches every kind the reconcilers depend on and maps each
event to the keys that need another pass.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from loguru import logger

from queuewarden.constants import WORKSPACE_LABEL
from queuewarden.models.core import PersistentVolumeClaim, Pod, Role, RoleBinding, Secret, ServiceAccount
from queuewarden.models.run import Run
from queuewarden.models.workspace import Workspace
from queuewarden.operator.run import RunReconciler
from queuewarden.operator.workspace import WorkspaceReconciler
from queuewarden.store.base import ConflictError, StoreError

if TYPE_CHECKING:
    from queuewarden.models.meta import KubeObject
    from queuewarden.settings import QueueWardenSettings
    from queuewarden.store.base import EntityStore, WatchEvent

Key = tuple[str, str]
ReconcileFunc = Callable[[str, str], Awaitable[None]]


class Controller:
    """Keyed work queue feeding a pool of reconcile workers."""

    def __init__(
        self,
        name: str,
        reconcile: ReconcileFunc,
        *,
        workers: int = 4,
        backoff_base: float = 0.5,
        backoff_max: float = 60.0,
    ) -> None:
        self.name = name
        self._reconcile = reconcile
        self._workers = workers
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max

        self._queue: asyncio.Queue[Key] = asyncio.Queue()
        self._pending: set[Key] = set()
        self._active: set[Key] = set()
        self._failures: dict[Key, int] = {}
        self._retries: dict[Key, asyncio.TimerHandle] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    # -- Queue -----------------------------------------------------------------

    def enqueue(self, key: Key) -> None:
        retry = self._retries.pop(key, None)
        if retry is not None:
            retry.cancel()
        if key in self._pending:
            return
        self._pending.add(key)
        self._idle.clear()
        if key not in self._active:
            self._queue.put_nowait(key)

    def backoff(self, failures: int) -> float:
        """Delay before retry number *failures* (1-based)."""
        return min(self._backoff_base * 2 ** (failures - 1), self._backoff_max)

    async def wait_idle(self) -> None:
        """Wait until nothing is queued or being reconciled.

        Keys waiting out a backoff delay do not count.
        """
        await self._idle.wait()

    # -- Workers ---------------------------------------------------------------

    async def run(self) -> None:
        logger.info("Controller {}: starting {} workers", self.name, self._workers)
        try:
            async with asyncio.TaskGroup() as tg:
                for _ in range(self._workers):
                    tg.create_task(self._worker())
        finally:
            for handle in self._retries.values():
                handle.cancel()
            self._retries.clear()

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._pending.discard(key)
            self._active.add(key)
            try:
                await self._process(key)
            finally:
                self._active.discard(key)
                if key in self._pending:
                    self._queue.put_nowait(key)
                elif not self._pending and not self._active:
                    self._idle.set()

    async def _process(self, key: Key) -> None:
        namespace, name = key
        try:
            await self._reconcile(namespace, name)
        except ConflictError as exc:
            logger.debug("Controller {}: conflict on {}/{}, retrying: {}", self.name, namespace, name, exc)
            self._pending.add(key)
        except Exception:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
            delay = self.backoff(failures)
            logger.exception(
                "Controller {}: reconcile {}/{} failed (attempt {}), retrying in {:.1f}s",
                self.name,
                namespace,
                name,
                failures,
                delay,
            )
            self._retries[key] = asyncio.get_running_loop().call_later(delay, self._retry, key)
        else:
            self._failures.pop(key, None)

    def _retry(self, key: Key) -> None:
        self._retries.pop(key, None)
        self.enqueue(key)


class Manager:
    """Runs the workspace and run controllers for one namespace."""

    def __init__(self, store: EntityStore, settings: QueueWardenSettings, namespace: str | None = None) -> None:
        self._store = store
        self._namespace = namespace or settings.namespace
        self._watch_backoff = settings.backoff_base

        controller_args: dict[str, Any] = {
            "workers": settings.reconcile_workers,
            "backoff_base": settings.backoff_base,
            "backoff_max": settings.backoff_max,
        }
        workspace_reconciler = WorkspaceReconciler(store, default_cache_size=settings.default_cache_size)
        run_reconciler = RunReconciler(store, image=settings.runner_image)
        self.workspaces = Controller("workspace", workspace_reconciler.reconcile, **controller_args)
        self.runs = Controller("run", run_reconciler.reconcile, **controller_args)

    async def run(self) -> None:
        logger.info("Manager: watching namespace {}", self._namespace)
        async with asyncio.TaskGroup() as tg:
            tg.create_task(self.workspaces.run())
            tg.create_task(self.runs.run())
            tg.create_task(self._watch(Workspace, self._on_workspace))
            tg.create_task(self._watch(Run, self._on_run))
            tg.create_task(self._watch(ServiceAccount, self._on_credential))
            tg.create_task(self._watch(Secret, self._on_credential))
            tg.create_task(self._watch(PersistentVolumeClaim, self._on_workspace_owned))
            tg.create_task(self._watch(Role, self._on_workspace_owned))
            tg.create_task(self._watch(RoleBinding, self._on_workspace_owned))
            tg.create_task(self._watch(Pod, self._on_pod))

    async def _watch(self, kind: type[KubeObject], handler: Callable[[WatchEvent[Any]], Awaitable[None]]) -> None:
        # A restarted watch replays every object, so a dropped event is handled again.
        while True:
            try:
                async with aclosing(self._store.watch(kind, self._namespace)) as events:
                    async for event in events:
                        await handler(event)
            except StoreError as exc:
                logger.warning("Manager: {} watch failed, restarting: {}", kind.KIND, exc)
            except Exception:
                logger.exception("Manager: handling a {} event failed, restarting the watch", kind.KIND)
            await asyncio.sleep(self._watch_backoff)

    # -- Event mapping ---------------------------------------------------------

    async def _on_workspace(self, event: WatchEvent[Workspace]) -> None:
        workspace = event.object
        self.workspaces.enqueue(workspace.key)
        # Queue changes move runs forward.
        runs = await self._store.list(Run, workspace.namespace, labels={WORKSPACE_LABEL: workspace.name})
        for run in runs:
            self.runs.enqueue(run.key)

    async def _on_run(self, event: WatchEvent[Run]) -> None:
        run = event.object
        self.runs.enqueue(run.key)
        if run.workspace:
            self.workspaces.enqueue((run.namespace, run.workspace))

    async def _on_credential(self, event: WatchEvent[ServiceAccount | Secret]) -> None:
        obj = event.object
        for workspace in await self._store.list(Workspace, obj.namespace):
            spec = workspace.spec
            referenced = spec.service_account_name if obj.KIND == ServiceAccount.KIND else spec.secret_name
            if referenced == obj.name:
                self.workspaces.enqueue(workspace.key)

    async def _on_workspace_owned(self, event: WatchEvent[Any]) -> None:
        obj = event.object
        for ref in obj.metadata.owner_references:
            if ref.kind == Workspace.KIND:
                self.workspaces.enqueue((obj.namespace, ref.name))

    async def _on_pod(self, event: WatchEvent[Pod]) -> None:
        pod = event.object
        for ref in pod.metadata.owner_references:
            if ref.kind == Run.KIND:
                self.runs.enqueue((pod.namespace, ref.name))
