from __future__ import annotations

import shlex
from pathlib import Path

import structlog
from pydantic import BaseModel

from .exceptions import LauncherError

logger = structlog.get_logger()

LAUNCHER_NAME = "run.sh"


class Launcher(BaseModel):
    """A ``run.sh`` that hands control to an environment's interpreter."""

    interpreter: Path
    shell: str = "/bin/bash"

    @property
    def environment(self) -> Path:
        # <prefix>/bin/python
        return self.interpreter.parent.parent

    def render(self) -> str:
        interpreter = shlex.quote(str(self.interpreter))
        return f'#!{self.shell}\nexec {interpreter} "$@"\n'


def write_launcher(launcher: Launcher, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(launcher.render())
    path.chmod(0o755)
    logger.debug("Wrote launcher", path=str(path), interpreter=str(launcher.interpreter))
    return path


def parse_launcher(text: str) -> Launcher:
    lines = text.splitlines()
    shell = "/bin/bash"
    if lines and lines[0].startswith("#!"):
        shell = lines[0][2:].strip()
    for line in reversed(lines):
        line = line.strip()
        if not line.startswith("exec "):
            continue
        try:
            words = shlex.split(line)
        except ValueError as e:
            raise LauncherError(f"Cannot parse exec line: {line}") from e
        if len(words) < 2:
            break
        return Launcher(interpreter=Path(words[1]), shell=shell)
    raise LauncherError("No exec line found in launcher")


def read_launcher(path: str | Path) -> Launcher:
    path = Path(path)
    if not path.is_file():
        raise LauncherError(f"Launcher not found: {path}")
    return parse_launcher(path.read_text())
