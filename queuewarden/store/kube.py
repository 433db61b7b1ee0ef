"""Kubernetes-backed entity store.

Maps the ``EntityStore`` protocol onto the official ``kubernetes`` client:

- queuewarden resources (Workspace, Run) via ``CustomObjectsApi``;
- Pods, ConfigMaps, Secrets, ServiceAccounts, PVCs via ``CoreV1Api``;
- Roles and RoleBindings via ``RbacAuthorizationV1Api``.

The client is synchronous; every call runs in the anyio worker thread pool.
Typed responses are converted back to wire JSON with
``ApiClient.sanitize_for_serialization`` and parsed into queuewarden models,
so the rest of the code never sees ``V1Pod`` & co.

Owner-reference cascade deletion is left to the cluster's garbage collector.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from functools import partial
from typing import Any

from anyio import to_thread
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from loguru import logger

from queuewarden.constants import API_GROUP, API_VERSION
from queuewarden.models.enums import EventType
from queuewarden.models.meta import KubeObject
from queuewarden.store.base import AlreadyExistsError, ConflictError, NotFoundError, StoreError, T, WatchEvent

_CORE_KINDS = {
    "Pod": "pod",
    "ConfigMap": "config_map",
    "Secret": "secret",
    "ServiceAccount": "service_account",
    "PersistentVolumeClaim": "persistent_volume_claim",
}
_RBAC_KINDS = {
    "Role": "role",
    "RoleBinding": "role_binding",
}
_CUSTOM_KINDS = {"Workspace", "Run"}


def load_api_client(context: str | None = None) -> client.ApiClient:
    """Build an API client from in-cluster config, falling back to kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        pass
    else:
        logger.info("Loaded in-cluster Kubernetes configuration")
        return client.ApiClient()

    try:
        api_client = config.new_client_from_config(context=context)
    except config.ConfigException as exc:
        msg = "Cannot load Kubernetes configuration"
        raise StoreError(msg) from exc
    logger.info("Loaded kubeconfig (context={})", context or "<current>")
    return api_client


def _label_selector(labels: dict[str, str] | None) -> str | None:
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _translate(exc: ApiException, kind: str, namespace: str, name: str, *, creating: bool = False) -> StoreError:
    if exc.status == 404:
        return NotFoundError(kind, namespace, name)
    if exc.status == 409:
        if creating:
            return AlreadyExistsError(f"{kind} '{namespace}/{name}' already exists")
        return ConflictError(f"{kind} '{namespace}/{name}' was modified: {exc.reason}")
    return StoreError(f"{kind} '{namespace}/{name}': {exc.status} {exc.reason}")


class KubeEntityStore:
    """EntityStore implementation backed by a live cluster."""

    def __init__(self, api_client: client.ApiClient) -> None:
        self._api = api_client
        self._core = client.CoreV1Api(api_client)
        self._rbac = client.RbacAuthorizationV1Api(api_client)
        self._custom = client.CustomObjectsApi(api_client)

    # -- Dispatch --------------------------------------------------------------

    def _method(self, kind: type[KubeObject], verb: str) -> Callable[..., Any]:
        """Resolve ``verb`` (read/list/create/replace/replace_status/delete) for *kind*.

        The returned callable takes ``namespace`` first, then ``name`` where
        the verb needs one, then ``body`` for writes.
        """
        if kind.KIND in _CUSTOM_KINDS:
            custom_verb = {
                "read": "get",
                "list": "list",
                "create": "create",
                "replace": "replace",
                "replace_status": "replace",
                "delete": "delete",
            }[verb]
            suffix = "_status" if verb == "replace_status" else ""
            method = getattr(self._custom, f"{custom_verb}_namespaced_custom_object{suffix}")
            return lambda namespace, *rest, **kw: method(API_GROUP, API_VERSION, namespace, kind.PLURAL, *rest, **kw)

        if kind.KIND in _CORE_KINDS:
            api, resource = self._core, _CORE_KINDS[kind.KIND]
        elif kind.KIND in _RBAC_KINDS:
            api, resource = self._rbac, _RBAC_KINDS[kind.KIND]
        else:
            msg = f"Unsupported kind: {kind.KIND}"
            raise StoreError(msg)

        if verb == "replace_status":
            name = f"replace_namespaced_{resource}_status"
        else:
            name = f"{verb}_namespaced_{resource}"
        method = getattr(api, name)
        # Typed API signatures are (name, namespace, body) rather than (namespace, name, body).
        if verb in ("read", "replace", "replace_status", "delete"):
            return lambda namespace, obj_name, *rest, **kw: method(obj_name, namespace, *rest, **kw)
        return lambda namespace, *rest, **kw: method(namespace, *rest, **kw)

    def _parse(self, kind: type[T], raw: Any) -> T:
        data = raw if isinstance(raw, dict) else self._api.sanitize_for_serialization(raw)
        return kind.from_manifest(data)

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await to_thread.run_sync(partial(func, *args, **kwargs))

    # -- Read ------------------------------------------------------------------

    async def get(self, kind: type[T], namespace: str, name: str) -> T:
        try:
            raw = await self._call(self._method(kind, "read"), namespace, name)
        except ApiException as exc:
            raise _translate(exc, kind.KIND, namespace, name) from exc
        return self._parse(kind, raw)

    async def list(self, kind: type[T], namespace: str, labels: dict[str, str] | None = None) -> list[T]:
        try:
            raw = await self._call(self._method(kind, "list"), namespace, label_selector=_label_selector(labels))
        except ApiException as exc:
            raise _translate(exc, kind.KIND, namespace, "*") from exc
        items = raw["items"] if isinstance(raw, dict) else raw.items
        parsed = [self._parse(kind, item) for item in items]
        return sorted(parsed, key=lambda o: (o.metadata.creation_timestamp is None, o.metadata.creation_timestamp))

    # -- Write -----------------------------------------------------------------

    async def create(self, obj: T) -> T:
        try:
            raw = await self._call(self._method(type(obj), "create"), obj.namespace, obj.to_manifest())
        except ApiException as exc:
            raise _translate(exc, obj.KIND, obj.namespace, obj.name, creating=True) from exc
        return self._parse(type(obj), raw)

    async def update(self, obj: T) -> T:
        return await self._replace(obj, "replace")

    async def update_status(self, obj: T) -> T:
        return await self._replace(obj, "replace_status")

    async def _replace(self, obj: T, verb: str) -> T:
        try:
            raw = await self._call(self._method(type(obj), verb), obj.namespace, obj.name, obj.to_manifest())
        except ApiException as exc:
            raise _translate(exc, obj.KIND, obj.namespace, obj.name) from exc
        return self._parse(type(obj), raw)

    async def delete(self, kind: type[T], namespace: str, name: str) -> None:
        try:
            await self._call(self._method(kind, "delete"), namespace, name, propagation_policy="Background")
        except ApiException as exc:
            raise _translate(exc, kind.KIND, namespace, name) from exc

    # -- Watch -----------------------------------------------------------------

    async def watch(
        self,
        kind: type[T],
        namespace: str,
        *,
        name: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> AsyncIterator[WatchEvent[T]]:
        list_fn = self._method(kind, "list")
        selectors: dict[str, Any] = {"label_selector": _label_selector(labels)}
        if name is not None:
            selectors["field_selector"] = f"metadata.name={name}"

        while True:
            w = watch.Watch()
            # Each (re)started watch replays current objects as ADDED.
            events = w.stream(list_fn, namespace, timeout_seconds=300, **selectors)
            try:
                while True:
                    raw = await to_thread.run_sync(next, events, None, abandon_on_cancel=True)
                    if raw is None:
                        break
                    event_type = raw.get("type")
                    if event_type == "ERROR":
                        logger.debug("Watch {} in {} returned error, restarting: {}", kind.KIND, namespace, raw.get("raw_object"))
                        break
                    if event_type not in EventType.__members__:
                        continue
                    yield WatchEvent(EventType(event_type), self._parse(kind, raw["raw_object"]))
            except ApiException as exc:
                raise _translate(exc, kind.KIND, namespace, name or "*") from exc
            finally:
                w.stop()
