"""Execution pod for a run.

The pod is named after its run and owned by it.  Its single ``runner``
container executes a shell entrypoint rendered from ``ENTRYPOINT_TEMPLATE``:

1. unpack the configuration tarball from the payload ConfigMap;
2. for interactive runs, print the handshake token and wait (bounded by the
   run's handshake timeout) for the client to echo it back on stdin;
3. exec the command.

Template variables:

- ``payload``           : str  -- path of the tarball inside the pod
- ``working_dir``       : str  -- directory the tarball is unpacked into
- ``handshake``         : bool -- whether to wait for the client
- ``handshake_timeout`` : int  -- seconds to wait for the client
- ``token``             : str  -- handshake token
- ``entrypoint``        : str  -- shell-quoted command line
"""

from __future__ import annotations

import math
import posixpath

import jinja2

from queuewarden.constants import (
    CACHE_MOUNT_PATH,
    HANDSHAKE_TOKEN,
    PAYLOAD_MOUNT_PATH,
    RUN_LABEL,
    RUNNER_CONTAINER_NAME,
    WORKING_DIR,
    WORKSPACE_LABEL,
)
from queuewarden.models.commands import entrypoint_line
from queuewarden.models.core import (
    ConfigMapSource,
    Container,
    EnvFromSource,
    EnvVar,
    PersistentVolumeClaimSource,
    Pod,
    PodSpec,
    SecretEnvSource,
    Volume,
    VolumeMount,
)
from queuewarden.models.meta import ObjectMeta
from queuewarden.models.run import Run
from queuewarden.models.workspace import Workspace
from queuewarden.operator.resources import cache_claim_name

ENTRYPOINT_TEMPLATE = """\
set -e
mkdir -p {{ working_dir }} "$TF_PLUGIN_CACHE_DIR"
tar -zxf {{ payload }} -C {{ working_dir }}
{% if handshake %}
echo "{{ token }}"
if ! read -r -t {{ handshake_timeout }} reply; then
  echo "timed out waiting for client handshake" >&2
  exit 1
fi
reply=$(printf '%s' "$reply" | tr -d '\\r')
if [ "$reply" != "{{ token }}" ]; then
  echo "unexpected client handshake" >&2
  exit 1
fi
{% endif %}
exec {{ entrypoint }}
"""

_env = jinja2.Environment(autoescape=False, undefined=jinja2.StrictUndefined, trim_blocks=True)  # noqa: S701


def render_entrypoint(run: Run) -> str:
    template = _env.from_string(ENTRYPOINT_TEMPLATE)
    return template.render(
        payload=posixpath.join(PAYLOAD_MOUNT_PATH, run.spec.config_map_key),
        working_dir=WORKING_DIR,
        handshake=run.spec.handshake,
        handshake_timeout=max(1, math.ceil(run.spec.handshake_timeout)),
        token=HANDSHAKE_TOKEN,
        entrypoint=entrypoint_line(run.spec.command, run.spec.args),
    )


def build_pod(run: Run, workspace: Workspace, image: str) -> Pod:
    """Pod manifest executing *run* with *workspace*'s credentials and cache."""
    env_from = []
    if workspace.spec.secret_name:
        env_from.append(EnvFromSource(secret_ref=SecretEnvSource(name=workspace.spec.secret_name)))

    container = Container(
        name=RUNNER_CONTAINER_NAME,
        image=image,
        command=["sh", "-c", render_entrypoint(run)],
        env=[
            EnvVar(name="QW_RUN", value=run.name),
            EnvVar(name="QW_WORKSPACE", value=workspace.name),
            EnvVar(name="TF_PLUGIN_CACHE_DIR", value=posixpath.join(CACHE_MOUNT_PATH, "plugins")),
        ],
        env_from=env_from,
        volume_mounts=[
            VolumeMount(name="payload", mount_path=PAYLOAD_MOUNT_PATH, read_only=True),
            VolumeMount(name="cache", mount_path=CACHE_MOUNT_PATH),
        ],
        working_dir=WORKING_DIR,
        stdin=True,
        stdin_once=True,
        tty=run.spec.handshake,
    )

    return Pod(
        metadata=ObjectMeta(
            name=run.name,
            namespace=run.namespace,
            labels={RUN_LABEL: run.name, WORKSPACE_LABEL: workspace.name},
            owner_references=[run.owner_reference()],
        ),
        spec=PodSpec(
            containers=[container],
            volumes=[
                Volume(name="payload", config_map=ConfigMapSource(name=run.spec.config_map)),
                Volume(
                    name="cache",
                    persistent_volume_claim=PersistentVolumeClaimSource(claim_name=cache_claim_name(workspace.name)),
                ),
            ],
            service_account_name=workspace.spec.service_account_name,
            restart_policy="Never",
        ),
    )
