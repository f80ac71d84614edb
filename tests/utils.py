import sys
from pathlib import Path

import pytest

skip_on_windows = pytest.mark.skipif(sys.platform == "win32", reason="Doesn't support Windows")


def make_executable(path: Path, text: str = "#!/bin/sh\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    path.chmod(0o755)
    return path


def make_environment(prefix: Path) -> Path:
    """A directory that looks like a conda environment with a Python interpreter."""
    (prefix / "conda-meta").mkdir(parents=True)
    make_executable(prefix / "bin" / "python")
    return prefix
