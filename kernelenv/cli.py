from __future__ import annotations

import logging
import shlex
import sys
from functools import partial
from pathlib import Path
from typing import Optional, Tuple

import anyio
import rich_click as click
import structlog

from . import __version__
from .condarc import CondaRC, dump_condarc, load_condarc
from .config import KernelEnvConfig, load_config
from .environments import (
    PackageManager,
    environment_interpreter,
    find_environment,
    list_environments,
)
from .exceptions import KernelEnvError
from .kernelspec import (
    KernelSpec,
    find_kernelspec,
    find_kernelspecs,
    install_kernelspec,
    kernel_name,
    kernelspec_dirs,
    remove_kernelspec,
)
from .launcher import Launcher
from .paths import condarc_path
from .validate import check_condarc, check_kernelspec, check_launcher, ensure_valid

logger = structlog.get_logger()

pass_config = click.make_pass_decorator(KernelEnvConfig)


def _fail(e: KernelEnvError):
    return click.ClickException(str(e))


def _kernel_dirs(config: KernelEnvConfig) -> list[Path]:
    dirs = [config.kernels_dir]
    dirs.extend(d for d in kernelspec_dirs() if d != config.kernels_dir)
    return dirs


@click.group()  # type: ignore
@click.version_option(__version__)
@click.option(
    "--debug",
    is_flag=True,
    show_default=True,
    default=False,
    help="Enable debug mode.",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="The configuration file (YAML).",
)
@click.option(
    "--set",
    "set_",
    multiple=True,
    type=str,
    help="Set configuration.",
)
@click.pass_context
def main(
    ctx: click.Context,
    debug: bool = False,
    config_file: Optional[Path] = None,
    set_: Tuple[str, ...] = (),
) -> None:
    """Set up conda environments and Jupyter kernels on a shared cluster."""
    # stdout is kept for output that may be redirected, such as env export
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )
    try:
        ctx.obj = load_config(config_file, set_)
    except KernelEnvError as e:
        raise _fail(e)


@main.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding environments and packages (default: configured root).",
)
@click.option(
    "--channel",
    "channels",
    multiple=True,
    type=str,
    help="A channel, highest priority first (default: configured channels).",
)
@click.option(
    "--merge/--replace",
    default=True,
    show_default=True,
    help="Merge with the existing file or replace it.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the file (default: $CONDARC or ~/.condarc).",
)
@click.option("--dry-run", is_flag=True, default=False, help="Print the file instead.")
@pass_config
def condarc(
    config: KernelEnvConfig,
    root: Optional[Path],
    channels: Tuple[str, ...],
    merge: bool,
    output: Optional[Path],
    dry_run: bool,
) -> None:
    """Write a .condarc suited to a shared cluster."""
    output = output or condarc_path()
    rc = CondaRC.for_cluster(root or config.root, list(channels) or config.channels)
    try:
        if merge:
            rc = load_condarc(output).merge(rc)
        if dry_run:
            click.echo(rc.to_yaml(), nl=False)
            return
        dump_condarc(rc, output)
    except KernelEnvError as e:
        raise _fail(e)
    click.echo(f"Wrote {output}")


@main.command("install-kernel")
@click.argument("environment")
@click.option("--name", type=str, default=None, help="The kernel name.")
@click.option("--display-name", type=str, default=None, help="The name shown in Jupyter.")
@click.option("--language", type=str, default="python", show_default=True)
@click.option(
    "--launcher/--no-launcher",
    default=True,
    show_default=True,
    help="Start the kernel through a run.sh launcher.",
)
@click.option("--replace", is_flag=True, default=False, help="Replace an existing kernel.")
@pass_config
def install_kernel(
    config: KernelEnvConfig,
    environment: str,
    name: Optional[str],
    display_name: Optional[str],
    language: str,
    launcher: bool,
    replace: bool,
) -> None:
    """Register ENVIRONMENT (a name or a path) as a Jupyter kernel."""
    try:
        prefix = find_environment(environment, config.get_envs_dirs())
        interpreter = environment_interpreter(prefix)
        display_name = display_name or f"Python ({prefix.name})"
        name = name or kernel_name(prefix.name)
        spec = KernelSpec.for_interpreter(interpreter, display_name, language=language)
        run_sh = None
        if launcher:
            run_sh = Launcher(interpreter=interpreter, shell=config.launcher_shell)
        destination = install_kernelspec(
            spec, name, launcher=run_sh, kernels_dir=config.kernels_dir, replace=replace
        )
        for warning in ensure_valid(check_kernelspec(destination)):
            click.echo(str(warning), err=True)
    except (KernelEnvError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Installed kernel {name} in {destination}")


@main.command("list-kernels")
@pass_config
def list_kernels(config: KernelEnvConfig) -> None:
    """List the installed kernels."""
    for name, path in sorted(find_kernelspecs(_kernel_dirs(config)).items()):
        click.echo(f"{name}\t{path}")


@main.command("remove-kernel")
@click.argument("name")
@pass_config
def remove_kernel(config: KernelEnvConfig, name: str) -> None:
    """Remove the kernel NAME from the kernels directory."""
    try:
        path = remove_kernelspec(name, kernels_dir=config.kernels_dir)
    except KernelEnvError as e:
        raise _fail(e)
    click.echo(f"Removed {path}")


@main.command()
@click.option("--kernel", type=str, default=None, help="An installed kernel name.")
@click.option(
    "--kernelspec",
    type=click.Path(path_type=Path),
    default=None,
    help="A kernel.json or the directory holding it.",
)
@click.option("--launcher", type=click.Path(path_type=Path), default=None, help="A run.sh.")
@click.option(
    "--condarc",
    "condarc_file",
    type=click.Path(path_type=Path),
    default=None,
    help="A .condarc (default: $CONDARC or ~/.condarc when nothing else is given).",
)
@click.pass_context
@pass_config
def validate(
    config: KernelEnvConfig,
    ctx: click.Context,
    kernel: Optional[str],
    kernelspec: Optional[Path],
    launcher: Optional[Path],
    condarc_file: Optional[Path],
) -> None:
    """Check kernel descriptors, launchers and .condarc files."""
    problems = []
    try:
        if kernel:
            problems.extend(check_kernelspec(find_kernelspec(kernel, _kernel_dirs(config))))
    except KernelEnvError as e:
        raise _fail(e)
    if kernelspec:
        problems.extend(check_kernelspec(kernelspec))
    if launcher:
        problems.extend(check_launcher(launcher))
    if condarc_file is None and not (kernel or kernelspec or launcher):
        condarc_file = condarc_path()
    if condarc_file:
        problems.extend(check_condarc(condarc_file))
    for problem in problems:
        click.echo(str(problem))
    if any(problem.level == "error" for problem in problems):
        ctx.exit(1)
    click.echo("OK")


@main.group()
def env() -> None:
    """Manage environments through the package manager."""


def _package_manager(config: KernelEnvConfig) -> PackageManager:
    return PackageManager(config.package_manager)


def _run(pm: PackageManager, cmd: list[str], dry_run: bool) -> str:
    if dry_run:
        click.echo(shlex.join(cmd))
        return ""
    try:
        return anyio.run(pm.run, cmd)
    except KernelEnvError as e:
        raise _fail(e)


@env.command("create")
@click.argument("name")
@click.argument("packages", nargs=-1)
@click.option("--python", type=str, default=None, help="The Python version.")
@click.option("--channel", "channels", multiple=True, type=str, help="A channel.")
@click.option("--dry-run", is_flag=True, default=False, help="Print the command instead.")
@pass_config
def env_create(
    config: KernelEnvConfig,
    name: str,
    packages: Tuple[str, ...],
    python: Optional[str],
    channels: Tuple[str, ...],
    dry_run: bool,
) -> None:
    """Create the environment NAME with PACKAGES (ipykernel is always added)."""
    pm = _package_manager(config)
    if "ipykernel" not in packages:
        packages = packages + ("ipykernel",)
    cmd = pm.create_command(name, packages, python=python or config.python, channels=channels)
    _run(pm, cmd, dry_run)


@env.command("install")
@click.argument("name")
@click.argument("packages", nargs=-1, required=True)
@click.option("--channel", "channels", multiple=True, type=str, help="A channel.")
@click.option("--pip", is_flag=True, default=False, help="Install with pip inside the environment.")
@click.option("--dry-run", is_flag=True, default=False, help="Print the command instead.")
@pass_config
def env_install(
    config: KernelEnvConfig,
    name: str,
    packages: Tuple[str, ...],
    channels: Tuple[str, ...],
    pip: bool,
    dry_run: bool,
) -> None:
    """Install PACKAGES into the environment NAME."""
    pm = _package_manager(config)
    _run(pm, pm.install_command(name, packages, channels=channels, pip=pip), dry_run)


@env.command("export")
@click.argument("name")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the environment file here instead of stdout.",
)
@click.option(
    "--from-history/--full",
    default=True,
    show_default=True,
    help="Only export the packages that were asked for.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Print the command instead.")
@pass_config
def env_export(
    config: KernelEnvConfig,
    name: str,
    output: Optional[Path],
    from_history: bool,
    dry_run: bool,
) -> None:
    """Export the environment NAME to an environment file."""
    pm = _package_manager(config)
    text = _run(pm, pm.export_command(name, from_history=from_history), dry_run)
    if dry_run:
        return
    if output:
        output.write_text(text)
        logger.info("Exported environment", name=name, path=str(output))
    else:
        click.echo(text, nl=False)


@env.command("import")
@click.argument("environment_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--name", type=str, default=None, help="Override the environment name.")
@click.option("--dry-run", is_flag=True, default=False, help="Print the command instead.")
@pass_config
def env_import(
    config: KernelEnvConfig,
    environment_file: Path,
    name: Optional[str],
    dry_run: bool,
) -> None:
    """Create an environment from ENVIRONMENT_FILE."""
    pm = _package_manager(config)
    if dry_run:
        _run(pm, pm.import_command(environment_file, name=name), dry_run)
        return
    try:
        env_name = anyio.run(partial(pm.import_environment, environment_file, name=name))
    except KernelEnvError as e:
        raise _fail(e)
    click.echo(f"Created environment {env_name}")


@env.command("remove")
@click.argument("name")
@click.option("--dry-run", is_flag=True, default=False, help="Print the command instead.")
@pass_config
def env_remove(config: KernelEnvConfig, name: str, dry_run: bool) -> None:
    """Remove the environment NAME."""
    pm = _package_manager(config)
    _run(pm, pm.remove_command(name), dry_run)


@env.command("activate")
@click.argument("name")
@click.option("--shell", type=str, default="bash", show_default=True)
@pass_config
def env_activate(config: KernelEnvConfig, name: str, shell: str) -> None:
    """Print the line that activates NAME, use it with eval."""
    click.echo(_package_manager(config).activate_command(name, shell=shell))


@env.command("list")
@pass_config
def env_list(config: KernelEnvConfig) -> None:
    """List the environments found in the configured envs_dirs."""
    try:
        envs_dirs = config.get_envs_dirs()
    except KernelEnvError as e:
        raise _fail(e)
    for name, path in list_environments(envs_dirs).items():
        click.echo(f"{name}\t{path}")
