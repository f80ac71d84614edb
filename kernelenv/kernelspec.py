from __future__ import annotations

import json
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import structlog
from pydantic import BaseModel, Field

from .exceptions import InvalidKernelName, KernelExistsError, NoSuchKernel
from .launcher import LAUNCHER_NAME, Launcher, write_launcher
from .paths import jupyter_path, user_kernel_dir

logger = structlog.get_logger()

CONNECTION_FILE = "{connection_file}"
KERNEL_FILE = "kernel.json"

_invalid_name_chars = re.compile(r"[^a-z0-9._\-]+")
_valid_name = re.compile(r"^[a-z0-9._\-]+$", re.IGNORECASE)


class KernelSpec(BaseModel):
    argv: List[str] = Field(min_length=1)
    display_name: str
    language: str = "python"
    env: Optional[Dict[str, str]] = None
    interrupt_mode: Optional[Literal["signal", "message"]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def for_interpreter(
        cls,
        interpreter: str | Path,
        display_name: str,
        language: str = "python",
        **kwargs,
    ) -> KernelSpec:
        argv = [str(interpreter), "-m", "ipykernel_launcher", "-f", CONNECTION_FILE]
        return cls(argv=argv, display_name=display_name, language=language, **kwargs)

    @classmethod
    def for_launcher(
        cls,
        launcher: str | Path,
        display_name: str,
        language: str = "python",
        **kwargs,
    ) -> KernelSpec:
        # run.sh forwards its arguments to the interpreter
        return cls.for_interpreter(launcher, display_name, language=language, **kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> KernelSpec:
        return cls(**json.loads(Path(path).read_text()))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=1) + "\n"


def kernel_name(display_name: str) -> str:
    name = _invalid_name_chars.sub("-", display_name.strip().lower()).strip("-")
    if not name:
        raise ValueError(f"Cannot derive a kernel name from {display_name!r}")
    return name


def kernelspec_dirs() -> List[Path]:
    return jupyter_path("kernels")


def _list_kernels_in(kernel_dir: Path) -> Dict[str, Path]:
    if not kernel_dir.is_dir():
        return {}
    kernels = {}
    for path in kernel_dir.glob(f"*/{KERNEL_FILE}"):
        key = path.parent.name.lower()
        kernels[key] = path.parent
    return kernels


def find_kernelspecs(kernel_dirs: Optional[List[Path]] = None) -> Dict[str, Path]:
    """Returns a dict mapping kernel names to resource directories."""
    d: Dict[str, Path] = {}
    for kernel_dir in kernel_dirs if kernel_dirs is not None else kernelspec_dirs():
        kernels = _list_kernels_in(kernel_dir)
        for kname, spec in kernels.items():
            if kname not in d:
                logger.debug("Found kernel", name=kname, path=str(kernel_dir))
                d[kname] = spec
    return d


def find_kernelspec(kernel_name: str, kernel_dirs: Optional[List[Path]] = None) -> Path:
    specs = find_kernelspecs(kernel_dirs)
    if kernel_name.lower() not in specs:
        raise NoSuchKernel(kernel_name)
    return specs[kernel_name.lower()] / KERNEL_FILE


def install_kernelspec(
    spec: KernelSpec,
    name: str,
    launcher: Optional[Launcher] = None,
    kernels_dir: Optional[Path] = None,
    replace: bool = False,
) -> Path:
    """Create ``<kernels_dir>/<name>/`` with ``kernel.json`` and an optional ``run.sh``.

    When a launcher is given, ``argv[0]`` of the spec is pointed at the
    installed ``run.sh``.
    """
    name = _check_name(name)
    kernels_dir = Path(kernels_dir) if kernels_dir else user_kernel_dir()
    existing = _list_kernels_in(kernels_dir).get(name)
    destination = kernels_dir / name
    if existing is None and destination.exists():
        existing = destination
    if existing is not None and not replace:
        raise KernelExistsError(name, existing)
    kernels_dir.mkdir(parents=True, exist_ok=True)
    # build next to the destination so that a failure leaves the old kernel in place
    staging = Path(tempfile.mkdtemp(prefix=f".{name}-", dir=kernels_dir))
    old = staging.with_name(staging.name + ".old")
    try:
        staging.chmod(0o755)
        if launcher is not None:
            write_launcher(launcher, staging / LAUNCHER_NAME)
            launcher_path = destination / LAUNCHER_NAME
            spec = spec.model_copy(update={"argv": [str(launcher_path)] + spec.argv[1:]})
        (staging / KERNEL_FILE).write_text(spec.to_json())
        if existing is not None:
            existing.rename(old)
        staging.rename(destination)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        if existing is not None and old.exists() and not existing.exists():
            old.rename(existing)
        raise
    if old.exists():
        shutil.rmtree(old)
    logger.info("Kernel installed", name=name, path=str(destination))
    return destination


def remove_kernelspec(name: str, kernels_dir: Optional[Path] = None) -> Path:
    kernels_dir = Path(kernels_dir) if kernels_dir else user_kernel_dir()
    destination = _list_kernels_in(kernels_dir).get(name.lower())
    if destination is None:
        raise NoSuchKernel(name)
    shutil.rmtree(destination)
    logger.info("Kernel removed", name=name, path=str(destination))
    return destination


def _check_name(name: str) -> str:
    if not _valid_name.match(name) or not name.strip("."):
        raise InvalidKernelName(name)
    return name.lower()
