import os
from pathlib import Path

import pytest

from utils import make_environment, make_executable

FAKE_PACKAGE_MANAGER = """\
#!/bin/sh
echo "$(basename "$0") $@" >> "$KERNELENV_TEST_LOG"
for arg in "$@"; do
    if [ "$arg" = "broken" ]; then
        echo "PackagesNotFoundError: broken" >&2
        exit 3
    fi
done
if [ "$1" = "env" ] && [ "$2" = "export" ]; then
    printf 'name: %s\\ndependencies:\\n  - numpy\\n' "$4"
fi
"""


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "CONDARC",
        "JUPYTER_PATH",
        "JUPYTER_DATA_DIR",
        "JUPYTER_CONFIG_DIR",
        "XDG_DATA_HOME",
        "KERNELENV_ROOT",
        "KERNELENV_CONFIG",
        "CONDA_EXE",
        "MAMBA_EXE",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def project(tmp_path) -> Path:
    # stands for the cluster's project file system
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def environment(project) -> Path:
    return make_environment(project / "envs" / "analysis")


@pytest.fixture
def package_manager_log(tmp_path, monkeypatch) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    for name in ("conda", "mamba", "micromamba"):
        make_executable(bin_dir / name, FAKE_PACKAGE_MANAGER)
    log = tmp_path / "package_manager.log"
    monkeypatch.setenv("KERNELENV_TEST_LOG", str(log))
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
    return log
