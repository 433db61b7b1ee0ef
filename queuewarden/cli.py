import sys
from pathlib import Path

import click


@click.group()
def main() -> None:
    """Queuewarden - serialised command runs on Kubernetes workspaces."""


@main.command()
@click.option("--namespace", default=None, help="Namespace to watch (default: from QW_NAMESPACE or 'default').")
def operator(namespace: str | None) -> None:
    """Run the workspace and run controllers against the cluster."""
    import asyncio

    from queuewarden.log import setup_logging
    from queuewarden.operator.manager import Manager
    from queuewarden.settings import get_settings
    from queuewarden.store.kube import KubeEntityStore, load_api_client

    settings = get_settings()
    setup_logging(settings.log_level)

    store = KubeEntityStore(load_api_client(settings.kube_context))
    manager = Manager(store, settings, namespace=namespace)
    try:
        asyncio.run(manager.run())
    except KeyboardInterrupt:
        click.echo("Operator stopped.", err=True)


@main.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--namespace", "-n", default=None, help="Workspace namespace (default: from the marker file).")
@click.option("--workspace", "-w", default=None, help="Workspace name (default: from the marker file).")
@click.option(
    "--path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Configuration directory (default: current directory).",
)
@click.option("--no-tty", is_flag=True, default=False, help="Stream logs even when stdin is a terminal.")
def run(
    command: str,
    args: tuple[str, ...],
    namespace: str | None,
    workspace: str | None,
    path: Path | None,
    no_tty: bool,
) -> None:
    """Run COMMAND with ARGS in a workspace.

    The process exits with the command's exit code.
    """
    import anyio

    from queuewarden.launcher.attach import KubeAttacher
    from queuewarden.launcher.errors import ExitError, LauncherError
    from queuewarden.launcher.launcher import Launcher
    from queuewarden.launcher.options import LauncherOptions
    from queuewarden.log import setup_logging
    from queuewarden.settings import get_settings
    from queuewarden.store.base import StoreError
    from queuewarden.store.kube import KubeEntityStore, load_api_client

    settings = get_settings()
    setup_logging(settings.log_level, client=True)

    options = LauncherOptions.from_settings(
        settings,
        command,
        list(args),
        path=path,
        namespace=namespace,
        workspace=workspace,
        interactive=not no_tty and sys.stdin.isatty(),
    )
    api_client = load_api_client(settings.kube_context)
    launcher = Launcher(KubeEntityStore(api_client), options, KubeAttacher(api_client))

    try:
        anyio.run(launcher.run)
    except ExitError as exc:
        sys.exit(exc.code)
    except (LauncherError, StoreError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@main.group()
def workspace() -> None:
    """Workspace defaults for a configuration directory."""


@workspace.command()
@click.argument("target")
@click.option(
    "--path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Configuration directory (default: current directory).",
)
def use(target: str, path: Path | None) -> None:
    """Make TARGET (NAMESPACE/NAME) the default workspace for a directory."""
    from queuewarden.launcher.environment import InvalidMarkerError, parse_marker, write_marker

    try:
        namespace, name = parse_marker(target)
    except InvalidMarkerError as exc:
        raise click.BadParameter(str(exc), param_hint="TARGET") from exc

    marker = write_marker(path or Path.cwd(), namespace, name)
    click.echo(f"Using workspace {namespace}/{name} ({marker}).")


if __name__ == "__main__":
    main()
