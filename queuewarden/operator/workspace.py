"""Workspace reconciler -- health, prerequisites and the run queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from queuewarden.constants import DEFAULT_CACHE_SIZE, WORKSPACE_LABEL
from queuewarden.models.core import Secret, ServiceAccount
from queuewarden.models.enums import ConditionType, Reason
from queuewarden.models.meta import KubeObject, set_condition
from queuewarden.models.run import Run
from queuewarden.models.workspace import Workspace, WorkspaceStatus
from queuewarden.operator.resources import build_cache_claim, build_role, build_role_binding
from queuewarden.store.base import AlreadyExistsError, NotFoundError

if TYPE_CHECKING:
    from queuewarden.store.base import EntityStore


def compute_queue(current: list[str], pending: list[str]) -> list[str]:
    """Merge *pending* run names into *current* queue order.

    Entries of *current* that are still pending keep their relative order;
    pending runs not yet queued are appended in the order given.
    """
    remaining = list(pending)
    queue: list[str] = []
    for name in current:
        if name in remaining:
            queue.append(name)
            remaining.remove(name)
    return queue + remaining


class WorkspaceReconciler:
    """Converges one workspace towards its desired state.

    Level triggered and idempotent: every invocation recomputes the status
    from the store and writes it back only when it differs, so a converged
    workspace produces no writes at all.
    """

    def __init__(self, store: EntityStore, *, default_cache_size: str = DEFAULT_CACHE_SIZE) -> None:
        self._store = store
        self._default_cache_size = default_cache_size

    async def reconcile(self, namespace: str, name: str) -> None:
        try:
            workspace = await self._store.get(Workspace, namespace, name)
        except NotFoundError:
            logger.debug("Workspace {}/{} is gone, nothing to do", namespace, name)
            return

        status = workspace.status.model_copy(deep=True)

        missing = await self._missing_credentials(workspace)
        if missing:
            set_condition(
                status.conditions,
                ConditionType.HEALTHY,
                False,
                Reason.MISSING_RESOURCE,
                f"Missing {', '.join(missing)}",
            )
            await self._persist(workspace, status)
            return

        set_condition(
            status.conditions,
            ConditionType.HEALTHY,
            True,
            Reason.ALL_RESOURCES_FOUND,
            "Found service account and secret",
        )

        role = build_role(workspace)
        await self._ensure(build_cache_claim(workspace, self._default_cache_size))
        await self._ensure(role)
        await self._ensure(build_role_binding(workspace, role))
        set_condition(
            status.conditions,
            ConditionType.READY,
            True,
            Reason.PREREQUISITES_READY,
            "Cache, role and role binding exist",
        )

        runs = await self._store.list(Run, namespace, labels={WORKSPACE_LABEL: name})
        pending = [run.name for run in runs if not run.completed]
        status.queue = compute_queue(status.queue, pending)

        await self._persist(workspace, status)

    # -- Helpers ---------------------------------------------------------------

    async def _missing_credentials(self, workspace: Workspace) -> list[str]:
        checks: list[tuple[type[KubeObject], str | None]] = [
            (ServiceAccount, workspace.spec.service_account_name),
            (Secret, workspace.spec.secret_name),
        ]
        missing = []
        for kind, resource_name in checks:
            if not resource_name:
                continue
            try:
                await self._store.get(kind, workspace.namespace, resource_name)
            except NotFoundError:
                missing.append(f"{kind.KIND} '{resource_name}'")
        return missing

    async def _ensure(self, obj: KubeObject) -> None:
        """Create *obj* unless an object with its name already exists."""
        try:
            await self._store.get(type(obj), obj.namespace, obj.name)
        except NotFoundError:
            pass
        else:
            return

        try:
            await self._store.create(obj)
        except AlreadyExistsError:
            return
        logger.info("Created {} {}/{}", obj.KIND, obj.namespace, obj.name)

    async def _persist(self, workspace: Workspace, status: WorkspaceStatus) -> None:
        if status == workspace.status:
            return
        if status.queue != workspace.status.queue:
            logger.info("Workspace {}/{} queue: {}", workspace.namespace, workspace.name, status.queue)
        workspace.status = status
        await self._store.update_status(workspace)
