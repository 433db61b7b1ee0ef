"""Launcher -- submit a run, wait for its turn, connect, relay the exit code.

Phases:

1. **Admission**: check the command, then create the payload ConfigMap and
   the Run concurrently.  The first failure cancels the other; nothing is
   rolled back.
2. **Monitor**: see ``queuewarden.launcher.monitors``.
3. **Connect**: attach (interactive) or stream logs, while the exit relay
   watches the pod in the background.
4. **Exit**: the relay must produce the exit code within ``timeout_exit``
   once the client is done.

``run`` returns ``0`` or raises a ``LauncherError``; a nonzero exit code is
``ExitError`` carrying the code.
"""

from __future__ import annotations

import sys
from functools import partial
from typing import TYPE_CHECKING, TextIO

import anyio
from anyio import to_thread
from loguru import logger

from queuewarden.constants import CLIENT_ANNOTATION, CLIENT_READY, RUN_LABEL, WORKSPACE_LABEL
from queuewarden.launcher.archive import PayloadTooLargeError, build_payload
from queuewarden.launcher.errors import AdmissionError, AttachError
from queuewarden.launcher.exit import ExitRelay
from queuewarden.launcher.monitors import monitor
from queuewarden.models.commands import RunCommand, UnsupportedCommandError, parse_command
from queuewarden.models.meta import ObjectMeta
from queuewarden.models.run import Run, RunSpec
from queuewarden.store.base import ConflictError, StoreError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from queuewarden.launcher.attach import Attacher
    from queuewarden.launcher.options import LauncherOptions
    from queuewarden.models.core import Pod
    from queuewarden.store.base import EntityStore


class Launcher:
    def __init__(
        self,
        store: EntityStore,
        options: LauncherOptions,
        attacher: Attacher,
        out: TextIO | None = None,
    ) -> None:
        self._store = store
        self._options = options
        self._attacher = attacher
        self._out = out or sys.stdout

    async def run(self) -> int:
        options = self._options
        command = self._admit()

        await self._submit(command)
        logger.info("Submitted {} {} to workspace {}/{}", options.run_name, command, options.namespace, options.workspace)

        pod = await monitor(self._store, options)

        relay = ExitRelay(self._store, options.namespace, options.run_name)
        error: Exception | None = None
        async with anyio.create_task_group() as tg:
            tg.start_soon(relay.run)
            try:
                await self._connect(pod)
                await relay.result(options.timeout_exit)
            except Exception as exc:
                error = exc
            tg.cancel_scope.cancel()

        if error is not None:
            raise error
        return 0

    # -- Admission -------------------------------------------------------------

    def _admit(self) -> RunCommand:
        try:
            return parse_command(self._options.command)
        except UnsupportedCommandError as exc:
            raise AdmissionError(str(exc)) from exc

    async def _submit(self, command: RunCommand) -> None:
        errors: list[Exception] = []

        async def submit(step: Callable[[], Awaitable[object]]) -> None:
            try:
                await step()
            except Exception as exc:
                errors.append(exc)
                tg.cancel_scope.cancel()

        async with anyio.create_task_group() as tg:
            tg.start_soon(submit, self._create_payload)
            tg.start_soon(submit, partial(self._create_run, command))

        if errors:
            raise AdmissionError(f"Cannot submit {self._options.run_name}: {errors[0]}") from errors[0]

    def _labels(self) -> dict[str, str]:
        return {WORKSPACE_LABEL: self._options.workspace, RUN_LABEL: self._options.run_name}

    async def _create_payload(self) -> None:
        options = self._options
        try:
            payload = await to_thread.run_sync(
                partial(build_payload, options.path, options.run_name, options.namespace, labels=self._labels())
            )
        except (OSError, PayloadTooLargeError) as exc:
            msg = f"Cannot archive {options.path}: {exc}"
            raise AdmissionError(msg) from exc
        await self._store.create(payload)

    async def _create_run(self, command: RunCommand) -> None:
        options = self._options
        run = Run(
            metadata=ObjectMeta(name=options.run_name, namespace=options.namespace, labels=self._labels()),
            spec=RunSpec(
                command=command,
                args=options.args,
                config_map=options.run_name,
                handshake=options.interactive,
                handshake_timeout=options.handshake_timeout,
            ),
        )
        await self._store.create(run)

    # -- Connect ---------------------------------------------------------------

    async def _connect(self, pod: Pod) -> None:
        if self._options.interactive:
            await self._attacher.attach(
                pod,
                on_ready=self._mark_client_ready,
                handshake_timeout=self._options.handshake_timeout,
            )
        else:
            await self._attacher.stream_logs(pod, self._out)

    async def _mark_client_ready(self) -> None:
        """Annotate the run so the operator records ``ClientReady``.

        Raises ``AttachError`` if the annotation cannot be written: the pod
        would otherwise never see the client as ready.
        """
        options = self._options
        while True:
            try:
                run = await self._store.get(Run, options.namespace, options.run_name)
                run.metadata.annotations[CLIENT_ANNOTATION] = CLIENT_READY
                await self._store.update(run)
            except ConflictError:
                continue
            except StoreError as exc:
                msg = f"Cannot mark {options.run_name} as client ready: {exc}"
                raise AttachError(msg) from exc
            return
