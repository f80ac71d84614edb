from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import pydantic
import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import Field

from . import Config
from .condarc import load_condarc
from .environments import PackageManagerName
from .exceptions import KernelEnvError
from .paths import (
    condarc_path,
    default_config_file,
    default_root,
    expand_path,
    user_kernel_dir,
)

logger = structlog.get_logger()


class KernelEnvConfig(Config):
    package_manager: PackageManagerName = "mamba"
    root: Path = Field(default_factory=default_root)
    channels: list[str] = ["conda-forge"]
    envs_dirs: list[Path] = []
    kernels_dir: Path = Field(default_factory=user_kernel_dir)
    launcher_shell: str = "/bin/bash"
    python: str | None = None

    def get_envs_dirs(self) -> list[Path]:
        """The configured envs_dirs, else those of the user's .condarc, then ``root/envs``."""
        if self.envs_dirs:
            return [expand_path(d) for d in self.envs_dirs]
        envs_dirs = [expand_path(d) for d in load_condarc(condarc_path()).envs_dirs or []]
        default = expand_path(self.root) / "envs"
        if default not in envs_dirs:
            envs_dirs.append(default)
        return envs_dirs


def merge_config(config: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(config)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_set(set_: Iterable[str]) -> dict[str, Any]:
    """Turn ``a.b=value`` items into nested dicts, values are YAML scalars."""
    config: dict[str, Any] = {}
    for item in set_:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise KernelEnvError(f"Invalid setting, expected key=value: {item}")
        *parents, leaf = key.split(".")
        d = config
        for parent in parents:
            d = d.setdefault(parent, {})
        d[leaf] = _parse_value(value)
    return config


def _parse_value(value: str) -> Any:
    if not value:
        return ""
    try:
        parsed = yaml.load(value, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return value
    # numbers stay strings so that python=3.10 is not read as 3.1
    if isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
        return value
    return parsed


def load_config(
    config_file: str | Path | None = None,
    set_: Iterable[str] = (),
) -> KernelEnvConfig:
    data: dict[str, Any] = {}
    path = Path(config_file) if config_file else default_config_file()
    if path.is_file():
        try:
            data = yaml.load(path.read_text(), Loader=yaml.SafeLoader) or {}
        except yaml.YAMLError as e:
            raise KernelEnvError(f"Invalid configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise KernelEnvError(f"Invalid configuration file {path}: not a mapping")
        logger.debug("Loaded configuration", path=str(path))
    elif config_file:
        raise KernelEnvError(f"Configuration file not found: {path}")
    data = merge_config(data, parse_set(set_))
    try:
        return KernelEnvConfig(**data)
    except pydantic.ValidationError as e:
        raise KernelEnvError(f"Invalid configuration: {e}") from e
