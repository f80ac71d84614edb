"""Structural checks of the files a notebook front-end and a package manager read.

None of these start a kernel or call a package manager: they only look at the
files and at what they point to on disk.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Literal

import structlog
from pydantic import BaseModel

from .condarc import load_condarc
from .environments import is_environment
from .exceptions import CondaRCError, LauncherError, ValidationError
from .kernelspec import CONNECTION_FILE, KERNEL_FILE
from .launcher import LAUNCHER_NAME, read_launcher
from .paths import expand_path

logger = structlog.get_logger()


class Problem(BaseModel):
    subject: str
    message: str
    level: Literal["error", "warning"] = "error"

    def __str__(self) -> str:
        return f"{self.level}: {self.subject}: {self.message}"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def check_kernelspec(
    kernelspec: str | Path,
    connection_file: str = "kernel-test.json",
) -> List[Problem]:
    """Check a kernel.json, given as a path to a file or a directory, or as JSON text."""
    path = None
    if isinstance(kernelspec, Path) or not kernelspec.lstrip().startswith("{"):
        path = Path(kernelspec)
        if path.is_dir():
            path = path / KERNEL_FILE
        subject = str(path)
        if not path.is_file():
            return [Problem(subject=subject, message="kernel descriptor not found")]
        text = path.read_text()
    else:
        subject = KERNEL_FILE
        text = kernelspec

    problems = []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return [Problem(subject=subject, message=f"not valid JSON: {e}")]
    if not isinstance(data, dict):
        return [Problem(subject=subject, message="not a JSON object")]

    for key in ("language", "display_name"):
        value = data.get(key)
        if not isinstance(value, str) or not value:
            problems.append(Problem(subject=subject, message=f"{key} must be a non-empty string"))

    argv = data.get("argv")
    if not isinstance(argv, list) or not argv:
        problems.append(Problem(subject=subject, message="argv must be a non-empty list"))
        return problems
    if not all(isinstance(arg, str) for arg in argv):
        problems.append(Problem(subject=subject, message="argv must only contain strings"))
        return problems
    if not any(CONNECTION_FILE in arg for arg in argv):
        problems.append(
            Problem(subject=subject, message=f"argv does not contain {CONNECTION_FILE}")
        )

    # the front-end substitutes the placeholder inside argv at launch
    argv = [arg.replace(CONNECTION_FILE, connection_file) for arg in argv]
    executable = expand_path(argv[0])
    if os.sep not in argv[0] and shutil.which(argv[0]):
        # a bare command is looked up on PATH by the front-end
        executable = Path(shutil.which(argv[0]))
    elif not executable.is_absolute() and path is not None:
        executable = path.parent / executable
    if not executable.exists():
        problems.append(Problem(subject=subject, message=f"{argv[0]} does not exist"))
    elif not _is_executable(executable):
        problems.append(Problem(subject=subject, message=f"{argv[0]} is not executable"))
    elif (
        path is not None
        and executable.name == LAUNCHER_NAME
        and executable.resolve().parent == path.resolve().parent
    ):
        problems.extend(check_launcher(executable))
    return problems


def check_launcher(path: str | Path) -> List[Problem]:
    path = Path(path)
    subject = str(path)
    if not path.is_file():
        return [Problem(subject=subject, message="launcher not found")]
    problems = []
    if not _is_executable(path):
        problems.append(Problem(subject=subject, message="launcher is not executable"))
    try:
        launcher = read_launcher(path)
    except LauncherError as e:
        problems.append(Problem(subject=subject, message=str(e)))
        return problems
    interpreter = launcher.interpreter
    if not interpreter.exists():
        problems.append(Problem(subject=subject, message=f"{interpreter} does not exist"))
    elif not _is_executable(interpreter):
        problems.append(Problem(subject=subject, message=f"{interpreter} is not executable"))
    if not is_environment(launcher.environment):
        problems.append(
            Problem(
                subject=subject,
                message=f"{interpreter} is not inside an environment directory",
            )
        )
    return problems


def _writable_parent(path: Path) -> bool:
    for parent in (path, *path.parents):
        if parent.exists():
            return os.access(parent, os.W_OK)
    return False


def check_condarc(path: str | Path) -> List[Problem]:
    path = Path(path)
    subject = str(path)
    if not path.is_file():
        return [Problem(subject=subject, message="condarc not found")]
    try:
        condarc = load_condarc(path)
    except CondaRCError as e:
        return [Problem(subject=subject, message=str(e))]

    problems = []
    home = Path.home()
    for key in ("envs_dirs", "pkgs_dirs"):
        for entry in getattr(condarc, key) or []:
            directory = expand_path(entry)
            if not directory.is_absolute():
                problems.append(
                    Problem(subject=subject, message=f"{key} entry {entry} is not absolute")
                )
                continue
            if not _writable_parent(directory):
                problems.append(
                    Problem(subject=subject, message=f"{key} entry {entry} is not writable")
                )
            if directory == home or home in directory.parents:
                problems.append(
                    Problem(
                        subject=subject,
                        message=f"{key} entry {entry} is in the home directory",
                        level="warning",
                    )
                )
    return problems


def ensure_valid(problems: Iterable[Problem]) -> List[Problem]:
    """Raise if any problem is an error, returns the warnings otherwise."""
    problems = list(problems)
    for problem in problems:
        logger.debug("Validation problem", problem=str(problem))
    errors = [problem for problem in problems if problem.level == "error"]
    if errors:
        raise ValidationError(errors)
    return problems
