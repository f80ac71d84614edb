from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Literal

import pydantic
import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel

from .exceptions import CondaRCError

logger = structlog.get_logger()

LIST_KEYS = ("channels", "envs_dirs", "pkgs_dirs")


class CondaRC(BaseModel):
    """The subset of ``.condarc`` keys this tool manages.

    Keys it does not know about are kept as extra fields so that rewriting a
    user's file does not lose them.
    """

    model_config = {"extra": "allow"}

    channels: list[str] | None = None
    envs_dirs: list[str] | None = None
    pkgs_dirs: list[str] | None = None
    channel_priority: Literal["strict", "flexible", "disabled"] | None = None
    auto_activate_base: bool | None = None
    auto_update_conda: bool | None = None
    always_yes: bool | None = None
    show_channel_urls: bool | None = None

    @classmethod
    def for_cluster(cls, root: str | Path, channels: list[str] | None = None) -> CondaRC:
        root = Path(root)
        return cls(
            channels=list(channels) if channels else ["conda-forge"],
            envs_dirs=[str(root / "envs")],
            pkgs_dirs=[str(root / "pkgs")],
            auto_activate_base=False,
            auto_update_conda=False,
            always_yes=False,
            show_channel_urls=True,
        )

    def to_dict(self) -> dict[str, Any]:
        # unset managed keys are omitted, unknown keys are kept as they were read
        extra = self.model_extra or {}
        data = self.model_dump(exclude_none=True, exclude=set(extra))
        data.update(extra)
        return data

    def to_yaml(self) -> str:
        data = self.to_dict()
        if not data:
            return ""
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)

    def merge(self, other: CondaRC) -> CondaRC:
        data = self.to_dict()
        for key, value in other.to_dict().items():
            if key in LIST_KEYS and data.get(key):
                merged = list(data[key])
                merged.extend(v for v in value if v not in merged)
                data[key] = merged
            else:
                data[key] = value
        return CondaRC(**data)


def parse_condarc(text: str) -> CondaRC:
    try:
        data = yaml.load(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise CondaRCError(f"Invalid YAML in condarc: {e}") from e
    if data is None:
        return CondaRC()
    if not isinstance(data, dict):
        raise CondaRCError("A condarc file must contain a mapping")
    try:
        return CondaRC(**data)
    except pydantic.ValidationError as e:
        raise CondaRCError(f"Invalid condarc: {e}") from e


def load_condarc(path: str | Path) -> CondaRC:
    path = Path(path)
    if not path.is_file():
        return CondaRC()
    return parse_condarc(path.read_text())


def dump_condarc(condarc: CondaRC, path: str | Path) -> Path | None:
    """Write ``condarc`` to ``path``, returns the backup of the previous file, if any."""
    path = Path(path)
    backup = None
    if path.exists():
        backup = path.with_name(path.name + ".bak")
        shutil.copy2(path, backup)
        logger.info("Backed up condarc", path=str(path), backup=str(backup))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(condarc.to_yaml())
    logger.info("Wrote condarc", path=str(path))
    return backup
