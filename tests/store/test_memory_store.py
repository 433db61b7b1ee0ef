"""Unit tests for MemoryEntityStore."""

from __future__ import annotations

from contextlib import aclosing

import anyio
import pytest

from queuewarden.constants import WORKSPACE_LABEL
from queuewarden.models import (
    EventType,
    ObjectMeta,
    PersistentVolumeClaim,
    Pod,
    Run,
    RunCommand,
    RunSpec,
    Workspace,
)
from queuewarden.store.base import AlreadyExistsError, ConflictError, EntityStore, NotFoundError
from queuewarden.store.memory import MemoryEntityStore


def _workspace(name: str = "ws") -> Workspace:
    return Workspace(metadata=ObjectMeta(name=name))


def _run(name: str, workspace: str = "ws") -> Run:
    return Run(
        metadata=ObjectMeta(name=name, labels={WORKSPACE_LABEL: workspace}),
        spec=RunSpec(command=RunCommand.PLAN, config_map=name),
    )


def test_implements_protocol(store: MemoryEntityStore) -> None:
    assert isinstance(store, EntityStore)


async def test_create_assigns_identity(store: MemoryEntityStore) -> None:
    created = await store.create(_workspace())

    assert created.metadata.uid
    assert created.metadata.resource_version
    assert created.metadata.creation_timestamp is not None


async def test_create_duplicate(store: MemoryEntityStore) -> None:
    await store.create(_workspace())
    with pytest.raises(AlreadyExistsError):
        await store.create(_workspace())


async def test_get_returns_copies(store: MemoryEntityStore) -> None:
    await store.create(_workspace())

    fetched = await store.get(Workspace, "default", "ws")
    fetched.status.queue.append("run-1")

    assert (await store.get(Workspace, "default", "ws")).status.queue == []


async def test_get_missing(store: MemoryEntityStore) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await store.get(Workspace, "default", "nope")
    assert isinstance(exc_info.value, LookupError)
    assert exc_info.value.name == "nope"


async def test_stale_write_conflicts(store: MemoryEntityStore) -> None:
    created = await store.create(_workspace())
    stale = created.model_copy(deep=True)

    created.status.queue = ["a"]
    await store.update_status(created)

    stale.status.queue = ["b"]
    with pytest.raises(ConflictError):
        await store.update_status(stale)


async def test_unversioned_write_is_unconditional(store: MemoryEntityStore) -> None:
    await store.create(_workspace())
    blind = _workspace()
    blind.spec.secret_name = "creds"

    updated = await store.update(blind)
    assert updated.spec.secret_name == "creds"


async def test_update_keeps_status_and_update_status_keeps_spec(store: MemoryEntityStore) -> None:
    workspace = await store.create(_workspace())
    workspace.status.queue = ["a"]
    workspace = await store.update_status(workspace)

    workspace.spec.secret_name = "creds"
    workspace.status.queue = ["ignored"]
    workspace = await store.update(workspace)
    assert workspace.status.queue == ["a"]
    assert workspace.spec.secret_name == "creds"

    workspace.spec.secret_name = "ignored"
    workspace.status.queue = ["a", "b"]
    workspace = await store.update_status(workspace)
    assert workspace.spec.secret_name == "creds"
    assert workspace.status.queue == ["a", "b"]


async def test_list_filters_by_label_in_creation_order(store: MemoryEntityStore) -> None:
    for name in ("c", "a", "b"):
        await store.create(_run(name))
    await store.create(_run("other", workspace="ws2"))

    runs = await store.list(Run, "default", labels={WORKSPACE_LABEL: "ws"})
    assert [r.name for r in runs] == ["c", "a", "b"]
    assert len(await store.list(Run, "default")) == 4
    assert await store.list(Run, "elsewhere") == []


async def test_delete_cascades_to_owned_objects(store: MemoryEntityStore) -> None:
    workspace = await store.create(_workspace())
    run = await store.create(_run("run-1"))
    await store.create(
        PersistentVolumeClaim(metadata=ObjectMeta(name="ws", owner_references=[workspace.owner_reference()]))
    )
    await store.create(Pod(metadata=ObjectMeta(name="run-1", owner_references=[run.owner_reference()])))

    await store.delete(Workspace, "default", "ws")

    with pytest.raises(NotFoundError):
        await store.get(PersistentVolumeClaim, "default", "ws")
    # Not owned by the workspace: the label alone does not make it a dependent.
    assert (await store.get(Pod, "default", "run-1")).name == "run-1"

    await store.delete(Run, "default", "run-1")
    with pytest.raises(NotFoundError):
        await store.get(Pod, "default", "run-1")


async def test_delete_missing(store: MemoryEntityStore) -> None:
    with pytest.raises(NotFoundError):
        await store.delete(Run, "default", "nope")


async def test_watch_replays_then_streams(store: MemoryEntityStore) -> None:
    await store.create(_run("run-1"))

    async with aclosing(store.watch(Run, "default")) as events:
        with anyio.fail_after(1):
            first = await anext(events)
            assert (first.type, first.object.name) == (EventType.ADDED, "run-1")

            await store.create(_run("run-2"))
            second = await anext(events)
            assert (second.type, second.object.name) == (EventType.ADDED, "run-2")

            run = await store.get(Run, "default", "run-1")
            run.metadata.annotations["note"] = "x"
            await store.update(run)
            third = await anext(events)
            assert third.type == EventType.MODIFIED
            assert third.object.metadata.annotations == {"note": "x"}

            await store.delete(Run, "default", "run-2")
            fourth = await anext(events)
            assert (fourth.type, fourth.object.name) == (EventType.DELETED, "run-2")


async def test_watch_by_name(store: MemoryEntityStore) -> None:
    async with aclosing(store.watch(Run, "default", name="run-2")) as events:
        await store.create(_run("run-1"))
        await store.create(_run("run-2"))
        with anyio.fail_after(1):
            event = await anext(events)
        assert event.object.name == "run-2"


async def test_closed_watch_is_unregistered(store: MemoryEntityStore) -> None:
    async with aclosing(store.watch(Run, "default")) as events:
        await store.create(_run("run-1"))
        await anext(events)
    assert store._watchers == []
