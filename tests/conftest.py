"""Shared test fixtures.

Unit tests run against ``MemoryEntityStore``; nothing here needs a cluster.
Tests that do should be marked with ``@pytest.mark.integration``.

``seed`` creates resources in the state the operator and the kubelet would
leave them in, so each test only spells out what it is about.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

import anyio
import pytest

from queuewarden.constants import RUNNER_CONTAINER_NAME, WORKSPACE_LABEL
from queuewarden.models import (
    ConditionStatus,
    ConditionType,
    ContainerState,
    ContainerStateTerminated,
    ContainerStatus,
    ObjectMeta,
    Pod,
    PodCondition,
    PodPhase,
    Reason,
    Run,
    RunCommand,
    Secret,
    ServiceAccount,
    Workspace,
    set_condition,
)
from queuewarden.models.core import ContainerStateRunning, ContainerStateWaiting
from queuewarden.models.run import RunSpec
from queuewarden.models.workspace import WorkspaceSpec
from queuewarden.operator.manager import Manager
from queuewarden.settings import QueueWardenSettings, get_settings
from queuewarden.store.memory import MemoryEntityStore

NAMESPACE = "default"


@pytest.fixture(autouse=True)
def _clean_settings() -> Iterator[None]:
    """Drop QW_* env vars and the settings cache around every test."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("QW_")}
    for key in saved:
        del os.environ[key]
    get_settings.cache_clear()
    yield
    for key in [k for k in os.environ if k.startswith("QW_")]:
        del os.environ[key]
    os.environ.update(saved)
    get_settings.cache_clear()


@pytest.fixture
def store() -> MemoryEntityStore:
    return MemoryEntityStore()


class Seeder:
    def __init__(self, store: MemoryEntityStore) -> None:
        self.store = store

    async def credentials(self, service_account: str = "runner", secret: str = "creds") -> None:
        await self.store.create(ServiceAccount(metadata=ObjectMeta(name=service_account, namespace=NAMESPACE)))
        await self.store.create(Secret(metadata=ObjectMeta(name=secret, namespace=NAMESPACE)))

    async def workspace(
        self,
        name: str = "ws",
        *,
        healthy: bool | None = None,
        queue: list[str] | None = None,
        **spec: object,
    ) -> Workspace:
        workspace = await self.store.create(
            Workspace(metadata=ObjectMeta(name=name, namespace=NAMESPACE), spec=WorkspaceSpec(**spec))
        )
        if healthy is None and queue is None:
            return workspace
        if healthy is not None:
            reason = Reason.ALL_RESOURCES_FOUND if healthy else Reason.MISSING_RESOURCE
            set_condition(workspace.status.conditions, ConditionType.HEALTHY, healthy, reason, "seeded")
        workspace.status.queue = list(queue or [])
        return await self.store.update_status(workspace)

    async def set_queue(self, name: str, queue: list[str]) -> Workspace:
        workspace = await self.store.get(Workspace, NAMESPACE, name)
        workspace.status.queue = queue
        return await self.store.update_status(workspace)

    async def run(
        self,
        name: str,
        workspace: str | None = "ws",
        *,
        command: RunCommand = RunCommand.PLAN,
        handshake: bool = False,
    ) -> Run:
        labels = {WORKSPACE_LABEL: workspace} if workspace else {}
        return await self.store.create(
            Run(
                metadata=ObjectMeta(name=name, namespace=NAMESPACE, labels=labels),
                spec=RunSpec(command=command, config_map=name, handshake=handshake),
            )
        )

    async def run_condition(
        self,
        name: str,
        condition_type: ConditionType,
        status: bool,
        reason: str = "",
        message: str = "",
    ) -> Run:
        run = await self.store.get(Run, NAMESPACE, name)
        set_condition(run.status.conditions, condition_type, status, reason, message)
        return await self.store.update_status(run)

    async def pod_running(self, name: str, *, ready: bool = True) -> Pod:
        pod = await self.store.get(Pod, NAMESPACE, name)
        pod.status.phase = PodPhase.RUNNING
        pod.status.conditions = [
            PodCondition(type="Ready", status=ConditionStatus.TRUE if ready else ConditionStatus.FALSE)
        ]
        pod.status.container_statuses = [
            ContainerStatus(
                name=RUNNER_CONTAINER_NAME,
                ready=ready,
                state=ContainerState(running=ContainerStateRunning(started_at="2026-01-01T00:00:00Z")),
            )
        ]
        return await self.store.update_status(pod)

    async def pod_waiting(self, name: str, reason: str) -> Pod:
        pod = await self.store.get(Pod, NAMESPACE, name)
        pod.status.container_statuses = [
            ContainerStatus(
                name=RUNNER_CONTAINER_NAME,
                state=ContainerState(waiting=ContainerStateWaiting(reason=reason, message="seeded")),
            )
        ]
        return await self.store.update_status(pod)

    async def pod_terminated(self, name: str, exit_code: int) -> Pod:
        pod = await self.store.get(Pod, NAMESPACE, name)
        pod.status.phase = PodPhase.SUCCEEDED if exit_code == 0 else PodPhase.FAILED
        pod.status.conditions = []
        pod.status.container_statuses = [
            ContainerStatus(
                name=RUNNER_CONTAINER_NAME,
                state=ContainerState(terminated=ContainerStateTerminated(exit_code=exit_code)),
            )
        ]
        return await self.store.update_status(pod)


@pytest.fixture
def seed(store: MemoryEntityStore) -> Seeder:
    return Seeder(store)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll an async predicate until it holds, failing after *timeout* seconds."""

    async def _eventually(predicate: Callable[[], Awaitable[bool]], timeout: float = 3.0) -> None:
        with anyio.fail_after(timeout):
            while not await predicate():
                await anyio.sleep(0.01)

    return _eventually


@pytest.fixture
async def manager(store: MemoryEntityStore) -> AsyncIterator[Manager]:
    """Operator running against ``store`` with fast retries."""
    settings = QueueWardenSettings(reconcile_workers=2, backoff_base=0.01, backoff_max=0.05, runner_image="img")
    manager = Manager(store, settings, namespace=NAMESPACE)
    task = asyncio.create_task(manager.run())
    yield manager
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
