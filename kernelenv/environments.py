from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path
from typing import Any, Iterable, Literal, Sequence

import structlog
import yaml  # type: ignore[import-untyped]
from anyio import run_process
from pydantic import BaseModel

from .exceptions import (
    EnvironmentNotFound,
    InterpreterNotFound,
    KernelEnvError,
    PackageManagerError,
    PackageManagerNotFound,
)
from .paths import expand_path

logger = structlog.get_logger()

PackageManagerName = Literal["conda", "mamba", "micromamba"]

PACKAGE_MANAGERS = ("conda", "mamba", "micromamba")

# environment variables set by the package managers' shell hooks
_EXE_VARIABLES = {
    "conda": "CONDA_EXE",
    "mamba": "MAMBA_EXE",
    "micromamba": "MAMBA_EXE",
}


class EnvironmentFile(BaseModel):
    name: str | None = None
    channels: list[str] = []
    dependencies: list[Any] = []


def read_environment_file(path: str | Path) -> EnvironmentFile:
    path = Path(path)
    if not path.is_file():
        raise KernelEnvError(f"Environment file not found: {path}")
    try:
        data = yaml.load(path.read_text(), Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise KernelEnvError(f"Environment file not readable: {path}") from e
    if not isinstance(data, dict):
        raise KernelEnvError(f"Environment file not readable: {path}")
    return EnvironmentFile(
        name=data.get("name"),
        channels=data.get("channels") or [],
        dependencies=data.get("dependencies") or [],
    )


def is_environment(path: str | Path) -> bool:
    return (Path(path) / "conda-meta").is_dir()


def list_environments(envs_dirs: Iterable[str | Path]) -> dict[str, Path]:
    environments: dict[str, Path] = {}
    for envs_dir in envs_dirs:
        envs_dir = expand_path(envs_dir)
        if not envs_dir.is_dir():
            continue
        for path in sorted(envs_dir.iterdir()):
            if path.name not in environments and is_environment(path):
                environments[path.name] = path
    return environments


def find_environment(name: str, envs_dirs: Iterable[str | Path]) -> Path:
    envs_dirs = list(envs_dirs)
    if os.sep in name or name.startswith((".", "~")):
        path = expand_path(name).absolute()
        if is_environment(path):
            return path
        raise EnvironmentNotFound(name)
    environments = list_environments(envs_dirs)
    if name not in environments:
        raise EnvironmentNotFound(name, envs_dirs)
    return environments[name]


def environment_interpreter(prefix: str | Path) -> Path:
    prefix = Path(prefix)
    if os.name == "nt":
        interpreter = prefix / "python.exe"
    else:
        interpreter = prefix / "bin" / "python"
    if not interpreter.exists():
        raise InterpreterNotFound(prefix)
    return interpreter


def _target(name: str) -> list[str]:
    if os.sep in name:
        return ["-p", str(expand_path(name))]
    return ["-n", name]


def _channels(channels: Sequence[str]) -> list[str]:
    args = []
    for channel in channels:
        args.extend(["-c", channel])
    return args


class PackageManager:
    """Builds and runs the command lines of an external package manager."""

    def __init__(self, name: str = "mamba", yes: bool = True) -> None:
        if name not in PACKAGE_MANAGERS:
            raise PackageManagerNotFound(name)
        self.name = name
        self.yes = yes

    def __repr__(self) -> str:
        return f"PackageManager({self.name!r})"

    def executable(self) -> str:
        exe = os.environ.get(_EXE_VARIABLES[self.name])
        if exe and Path(exe).name.startswith(self.name) and Path(exe).is_file():
            return exe
        exe = shutil.which(self.name)
        if exe is None:
            raise PackageManagerNotFound(self.name)
        return exe

    def _yes(self) -> list[str]:
        return ["--yes"] if self.yes else []

    def create_command(
        self,
        name: str,
        packages: Sequence[str] = (),
        python: str | None = None,
        channels: Sequence[str] = (),
    ) -> list[str]:
        cmd = [self.name, "create", *_target(name), *_channels(channels)]
        if python:
            cmd.append(f"python={python}")
        cmd.extend(packages)
        cmd.extend(self._yes())
        return cmd

    def install_command(
        self,
        name: str,
        packages: Sequence[str],
        channels: Sequence[str] = (),
        pip: bool = False,
    ) -> list[str]:
        if pip:
            return [self.name, "run", *_target(name), "python", "-m", "pip", "install", *packages]
        return [
            self.name,
            "install",
            *_target(name),
            *_channels(channels),
            *packages,
            *self._yes(),
        ]

    def export_command(self, name: str, from_history: bool = True) -> list[str]:
        cmd = [self.name, "env", "export", *_target(name)]
        if from_history:
            cmd.append("--from-history")
        return cmd

    def import_command(self, environment_file: str | Path, name: str | None = None) -> list[str]:
        if self.name == "micromamba":
            cmd = [self.name, "create", "-f", str(environment_file)]
        else:
            cmd = [self.name, "env", "create", "-f", str(environment_file)]
        if name:
            cmd.extend(_target(name))
        if self.name == "micromamba":
            cmd.extend(self._yes())
        return cmd

    def remove_command(self, name: str) -> list[str]:
        return [self.name, "env", "remove", *_target(name), *self._yes()]

    def run_command(self, name: str, command: Sequence[str]) -> list[str]:
        return [self.name, "run", *_target(name), *command]

    def activate_command(self, name: str, shell: str = "bash") -> str:
        """The line a user sources to activate ``name`` in an interactive shell."""
        if self.name == "conda":
            hook = f"conda shell.{shell} hook"
        else:
            hook = f"{self.name} shell hook --shell {shell}"
        return f'eval "$({hook})" && {self.name} activate {shlex.quote(name)}'

    async def run(self, cmd: list[str]) -> str:
        cmd = [self.executable(), *cmd[1:]]
        logger.info("Running package manager", command=shlex.join(cmd))
        result = await run_process(cmd, check=False)
        stdout = result.stdout.decode() if result.stdout else ""
        if result.returncode != 0:
            stderr = result.stderr.decode() if result.stderr else ""
            raise PackageManagerError(cmd, result.returncode, stderr)
        logger.debug("Package manager done", command=shlex.join(cmd))
        return stdout

    async def create_environment(
        self,
        name: str,
        packages: Sequence[str] = (),
        python: str | None = None,
        channels: Sequence[str] = (),
    ) -> None:
        await self.run(self.create_command(name, packages, python=python, channels=channels))

    async def install_packages(
        self,
        name: str,
        packages: Sequence[str],
        channels: Sequence[str] = (),
        pip: bool = False,
    ) -> None:
        await self.run(self.install_command(name, packages, channels=channels, pip=pip))

    async def export_environment(self, name: str, from_history: bool = True) -> str:
        return await self.run(self.export_command(name, from_history=from_history))

    async def import_environment(
        self, environment_file: str | Path, name: str | None = None
    ) -> str:
        environment = read_environment_file(environment_file)
        env_name = name or environment.name
        if not env_name:
            raise KernelEnvError(f"No environment name in {environment_file}")
        await self.run(self.import_command(environment_file, name=name))
        return env_name

    async def remove_environment(self, name: str) -> None:
        await self.run(self.remove_command(name))
