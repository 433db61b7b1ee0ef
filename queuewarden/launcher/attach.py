"""Connecting the client to the execution pod.

Two ways in:

- ``stream_logs`` follows the runner container's output (non-interactive);
- ``attach`` performs the handshake and hands the local terminal over to
  the runner container (interactive):

  1. follow the logs until the pod prints the handshake token, which means
     the entrypoint is waiting on stdin;
  2. attach to the container and write the token back;
  3. await ``on_ready`` (the launcher marks the run ``ClientReady``);
  4. relay stdin/stdout in raw terminal mode until the container exits.
"""

from __future__ import annotations

import os
import select
import sys
import termios
import tty
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, TextIO, runtime_checkable

import anyio
from anyio import to_thread
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from loguru import logger

from queuewarden.constants import HANDSHAKE_TOKEN, RUNNER_CONTAINER_NAME
from queuewarden.launcher.errors import AttachError

if TYPE_CHECKING:
    from queuewarden.models.core import Pod


@runtime_checkable
class Attacher(Protocol):
    async def attach(self, pod: Pod, *, on_ready: Callable[[], Awaitable[None]], handshake_timeout: float) -> None:
        """Handshake with *pod* and relay the terminal until the container exits."""
        ...

    async def stream_logs(self, pod: Pod, out: TextIO) -> None:
        """Copy the runner container's output to *out* until it exits."""
        ...


class KubeAttacher:
    """Attacher backed by the pod ``attach`` and ``log`` subresources."""

    def __init__(self, api_client: client.ApiClient, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._api_client = api_client
        self._core = client.CoreV1Api(api_client)
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    # -- Logs ------------------------------------------------------------------

    async def stream_logs(self, pod: Pod, out: TextIO) -> None:
        try:
            await to_thread.run_sync(self._copy_logs, pod, out, abandon_on_cancel=True)
        except ApiException as exc:
            msg = f"Cannot stream logs of pod '{pod.namespace}/{pod.name}': {exc.status} {exc.reason}"
            raise AttachError(msg) from exc

    def _follow(self, pod: Pod) -> Any:
        return self._core.read_namespaced_pod_log(
            pod.name,
            pod.namespace,
            container=RUNNER_CONTAINER_NAME,
            follow=True,
            _preload_content=False,
        )

    def _copy_logs(self, pod: Pod, out: TextIO) -> None:
        response = self._follow(pod)
        try:
            for chunk in response.stream(4096, decode_content=True):
                out.write(chunk.decode("utf-8", errors="replace"))
                out.flush()
        finally:
            response.release_conn()

    # -- Attach ----------------------------------------------------------------

    async def attach(self, pod: Pod, *, on_ready: Callable[[], Awaitable[None]], handshake_timeout: float) -> None:
        with anyio.move_on_after(handshake_timeout) as scope:
            try:
                await to_thread.run_sync(self._wait_for_token, pod, abandon_on_cancel=True)
            except ApiException as exc:
                msg = f"Cannot read logs of pod '{pod.namespace}/{pod.name}': {exc.status} {exc.reason}"
                raise AttachError(msg) from exc
        if scope.cancelled_caught:
            msg = f"Pod '{pod.namespace}/{pod.name}' did not offer a handshake within {handshake_timeout:g}s"
            raise AttachError(msg)

        try:
            session = await to_thread.run_sync(self._open, pod)
        except ApiException as exc:
            msg = f"Cannot attach to pod '{pod.namespace}/{pod.name}': {exc.status} {exc.reason}"
            raise AttachError(msg) from exc

        try:
            session.write_stdin(f"{HANDSHAKE_TOKEN}\n")
            logger.debug("Handshake sent to pod {}/{}", pod.namespace, pod.name)
            await on_ready()
            await to_thread.run_sync(self._relay, session, abandon_on_cancel=True)
        finally:
            session.close()

    def _wait_for_token(self, pod: Pod) -> None:
        response = self._follow(pod)
        try:
            for line in response:
                if HANDSHAKE_TOKEN.encode() in line:
                    return
        finally:
            response.release_conn()
        msg = f"Pod '{pod.namespace}/{pod.name}' exited before offering a handshake"
        raise AttachError(msg)

    def _open(self, pod: Pod) -> Any:
        # stream() patches the API client it is given; keep it off the shared one.
        core = client.CoreV1Api(client.ApiClient(self._api_client.configuration))
        return stream(
            core.connect_get_namespaced_pod_attach,
            pod.name,
            pod.namespace,
            container=RUNNER_CONTAINER_NAME,
            stdin=True,
            stdout=True,
            stderr=True,
            tty=True,
            _preload_content=False,
        )

    def _relay(self, session: Any) -> None:
        fd = self._stdin.fileno()
        saved = termios.tcgetattr(fd) if os.isatty(fd) else None
        if saved is not None:
            tty.setraw(fd)
        try:
            while session.is_open():
                session.update(timeout=0.1)
                if session.peek_stdout():
                    self._stdout.write(session.read_stdout())
                    self._stdout.flush()
                if session.peek_stderr():
                    self._stdout.write(session.read_stderr())
                    self._stdout.flush()
                readable, _, _ = select.select([fd], [], [], 0)
                if readable:
                    data = os.read(fd, 1024)
                    if not data:
                        break
                    session.write_stdin(data.decode("utf-8", errors="replace"))
        finally:
            if saved is not None:
                termios.tcsetattr(fd, termios.TCSADRAIN, saved)
