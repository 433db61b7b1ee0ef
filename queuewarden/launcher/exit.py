"""Exit relay -- report the runner container's exit code."""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING

import anyio
from loguru import logger

from queuewarden.constants import RUNNER_CONTAINER_NAME
from queuewarden.launcher.errors import ExitError, ExitRelayError, ExitRelayTimeoutError
from queuewarden.models.core import Pod
from queuewarden.models.enums import EventType
from queuewarden.store.base import StoreError

if TYPE_CHECKING:
    from queuewarden.store.base import EntityStore


async def wait_for_exit(store: EntityStore, namespace: str, name: str) -> int:
    """Watch pod *name* until its runner container terminates; return the exit code."""
    try:
        async with aclosing(store.watch(Pod, namespace, name=name)) as events:
            async for event in events:
                if event.type == EventType.DELETED:
                    msg = f"Pod '{namespace}/{name}' was deleted before it exited"
                    raise ExitRelayError(msg)
                container = event.object.container_status(RUNNER_CONTAINER_NAME)
                if container is not None and container.state.terminated is not None:
                    return container.state.terminated.exit_code
    except StoreError as exc:
        msg = f"Cannot watch pod '{namespace}/{name}': {exc}"
        raise ExitRelayError(msg) from exc

    msg = f"Watch on pod '{namespace}/{name}' ended before it exited"
    raise ExitRelayError(msg)


class ExitRelay:
    """Runs ``wait_for_exit`` in the background and holds its outcome.

    Start ``run`` in a task group as soon as the pod exists; call ``result``
    once the client is done with the pod.
    """

    def __init__(self, store: EntityStore, namespace: str, name: str) -> None:
        self._store = store
        self._namespace = namespace
        self._name = name
        self._done = anyio.Event()
        self.exit_code: int | None = None
        self.error: ExitRelayError | None = None

    async def run(self) -> None:
        try:
            self.exit_code = await wait_for_exit(self._store, self._namespace, self._name)
        except ExitRelayError as exc:
            self.error = exc
        finally:
            self._done.set()

    async def result(self, timeout: float) -> None:
        """Wait up to *timeout* seconds; raise unless the container exited zero."""
        with anyio.move_on_after(timeout) as scope:
            await self._done.wait()
        if scope.cancelled_caught:
            raise ExitRelayTimeoutError(timeout)
        if self.error is not None:
            raise self.error
        logger.debug("Pod {}/{} exited with code {}", self._namespace, self._name, self.exit_code)
        if self.exit_code:
            raise ExitError(self.exit_code)
