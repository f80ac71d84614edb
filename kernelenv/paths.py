import os
import sys
from pathlib import Path
from typing import List

if os.name == "nt":
    SYSTEM_JUPYTER_PATH = []
    programdata = os.environ.get("PROGRAMDATA", None)
    if programdata:
        SYSTEM_JUPYTER_PATH.append(Path(programdata) / "jupyter")
else:
    SYSTEM_JUPYTER_PATH = [
        Path("/usr/local/share/jupyter"),
        Path("/usr/share/jupyter"),
    ]

ENV_JUPYTER_PATH = Path(sys.prefix) / "share" / "jupyter"


def expand_path(s) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(str(s))))


def jupyter_config_dir() -> Path:
    if "JUPYTER_CONFIG_DIR" in os.environ:
        return Path(os.environ["JUPYTER_CONFIG_DIR"])
    return Path.home() / ".jupyter"


def jupyter_data_dir() -> Path:
    if "JUPYTER_DATA_DIR" in os.environ:
        return Path(os.environ["JUPYTER_DATA_DIR"])

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Jupyter"
    elif os.name == "nt":
        appdata = os.environ.get("APPDATA", None)
        if appdata:
            return Path(appdata) / "jupyter"
        else:
            return jupyter_config_dir() / "data"
    else:
        xdg = expand_path(os.environ.get("XDG_DATA_HOME", "~/.local/share"))
        return xdg / "jupyter"


def jupyter_path(*subdirs) -> List[Path]:
    paths = []
    # highest priority is env
    if os.environ.get("JUPYTER_PATH"):
        paths.extend(
            Path(p) for p in os.environ["JUPYTER_PATH"].split(os.pathsep) if p
        )
    # then user dir
    paths.append(jupyter_data_dir())
    # then sys.prefix
    if ENV_JUPYTER_PATH not in SYSTEM_JUPYTER_PATH:
        paths.append(ENV_JUPYTER_PATH)
    # finally, system
    paths.extend(SYSTEM_JUPYTER_PATH)

    if subdirs:
        paths = [p.joinpath(*subdirs) for p in paths]
    return paths


def user_kernel_dir() -> Path:
    return jupyter_data_dir() / "kernels"


def condarc_path() -> Path:
    if os.environ.get("CONDARC"):
        return expand_path(os.environ["CONDARC"])
    return Path.home() / ".condarc"


def default_root() -> Path:
    """Directory holding environments and the package cache.

    On a cluster this should point to the project or work file system, the
    home directory usually has a small quota.
    """
    if os.environ.get("KERNELENV_ROOT"):
        return expand_path(os.environ["KERNELENV_ROOT"])
    return Path.home() / ".local" / "share" / "kernelenv"


def default_config_file() -> Path:
    if os.environ.get("KERNELENV_CONFIG"):
        return expand_path(os.environ["KERNELENV_CONFIG"])
    return Path.home() / ".config" / "kernelenv.yml"
