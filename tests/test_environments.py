import os

import pytest

from kernelenv.environments import (
    PackageManager,
    environment_interpreter,
    find_environment,
    is_environment,
    list_environments,
    read_environment_file,
)
from kernelenv.exceptions import (
    EnvironmentNotFound,
    InterpreterNotFound,
    KernelEnvError,
    PackageManagerError,
    PackageManagerNotFound,
)
from utils import make_environment, skip_on_windows

ENVIRONMENT = """\
name: my-test-env
channels:
  - conda-forge
dependencies:
  - numpy
  - ipykernel
  - pip:
    - rich
"""


def test_unknown_package_manager():
    with pytest.raises(PackageManagerNotFound):
        PackageManager("pixi")


def test_create_command():
    pm = PackageManager("mamba")
    assert pm.create_command("analysis", ["numpy"], python="3.11", channels=["conda-forge"]) == [
        "mamba", "create", "-n", "analysis", "-c", "conda-forge", "python=3.11", "numpy", "--yes",
    ]
    assert PackageManager("conda", yes=False).create_command("/p/envs/analysis") == [
        "conda", "create", "-p", "/p/envs/analysis",
    ]


def test_install_command():
    pm = PackageManager("conda")
    assert pm.install_command("analysis", ["scipy"]) == [
        "conda", "install", "-n", "analysis", "scipy", "--yes",
    ]
    assert pm.install_command("analysis", ["rich"], pip=True) == [
        "conda", "run", "-n", "analysis", "python", "-m", "pip", "install", "rich",
    ]


def test_export_import_remove_commands():
    pm = PackageManager("micromamba")
    assert pm.export_command("analysis") == [
        "micromamba", "env", "export", "-n", "analysis", "--from-history",
    ]
    assert pm.export_command("analysis", from_history=False)[-1] == "analysis"
    assert pm.import_command("environment.yml") == [
        "micromamba", "create", "-f", "environment.yml", "--yes",
    ]
    assert PackageManager("mamba").import_command("environment.yml", name="other") == [
        "mamba", "env", "create", "-f", "environment.yml", "-n", "other",
    ]
    assert pm.remove_command("analysis") == [
        "micromamba", "env", "remove", "-n", "analysis", "--yes",
    ]
    assert pm.run_command("analysis", ["python", "-V"]) == [
        "micromamba", "run", "-n", "analysis", "python", "-V",
    ]


def test_activate_command():
    assert PackageManager("conda").activate_command("analysis") == (
        'eval "$(conda shell.bash hook)" && conda activate analysis'
    )
    assert PackageManager("micromamba").activate_command("my env", shell="zsh") == (
        "eval \"$(micromamba shell hook --shell zsh)\" && micromamba activate 'my env'"
    )


def test_read_environment_file(tmp_path):
    path = tmp_path / "environment.yml"
    path.write_text(ENVIRONMENT)
    environment = read_environment_file(path)
    assert environment.name == "my-test-env"
    assert environment.channels == ["conda-forge"]
    assert environment.dependencies == ["numpy", "ipykernel", {"pip": ["rich"]}]
    with pytest.raises(KernelEnvError):
        read_environment_file(tmp_path / "missing.yml")
    path.write_text("- a list")
    with pytest.raises(KernelEnvError):
        read_environment_file(path)


def test_discovery(tmp_path, project, environment):
    other_envs = tmp_path / "other" / "envs"
    shadowed = make_environment(other_envs / "analysis")
    second = make_environment(other_envs / "second")
    (other_envs / "not-an-env").mkdir()
    envs_dirs = [project / "envs", other_envs, tmp_path / "missing"]
    assert is_environment(environment)
    assert not is_environment(other_envs / "not-an-env")
    assert list_environments(envs_dirs) == {"analysis": environment, "second": second}
    assert find_environment("analysis", envs_dirs) == environment
    assert find_environment(str(shadowed), envs_dirs) == shadowed
    with pytest.raises(EnvironmentNotFound):
        find_environment("not-an-env", envs_dirs)
    with pytest.raises(EnvironmentNotFound):
        find_environment(str(other_envs / "not-an-env"), envs_dirs)


@skip_on_windows
def test_environment_interpreter(tmp_path, environment):
    assert environment_interpreter(environment) == environment / "bin" / "python"
    with pytest.raises(InterpreterNotFound):
        environment_interpreter(tmp_path)


@skip_on_windows
def test_executable(tmp_path, package_manager_log, monkeypatch):
    pm = PackageManager("micromamba")
    assert pm.executable() == str(tmp_path / "bin" / "micromamba")
    monkeypatch.setenv("MAMBA_EXE", str(tmp_path / "bin" / "mamba"))
    # MAMBA_EXE points to another package manager
    assert pm.executable() == str(tmp_path / "bin" / "micromamba")
    assert PackageManager("mamba").executable() == str(tmp_path / "bin" / "mamba")


def test_executable_not_found(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    with pytest.raises(PackageManagerNotFound):
        PackageManager("conda").executable()


@pytest.mark.anyio
@skip_on_windows
async def test_create_and_remove_environment(package_manager_log):
    pm = PackageManager("mamba")
    await pm.create_environment("analysis", ["numpy"], python="3.12")
    await pm.install_packages("analysis", ["rich"], pip=True)
    await pm.remove_environment("analysis")
    assert package_manager_log.read_text().splitlines() == [
        "mamba create -n analysis python=3.12 numpy --yes",
        "mamba run -n analysis python -m pip install rich",
        "mamba env remove -n analysis --yes",
    ]


@pytest.mark.anyio
@skip_on_windows
async def test_export_and_import_environment(tmp_path, package_manager_log):
    pm = PackageManager("conda")
    text = await pm.export_environment("analysis")
    assert text == "name: analysis\ndependencies:\n  - numpy\n"
    path = tmp_path / "environment.yml"
    path.write_text(text)
    assert await pm.import_environment(path) == "analysis"
    assert await pm.import_environment(path, name="copy") == "copy"
    assert package_manager_log.read_text().splitlines()[1:] == [
        f"conda env create -f {path}",
        f"conda env create -f {path} -n copy",
    ]


@pytest.mark.anyio
@skip_on_windows
async def test_package_manager_error(package_manager_log):
    pm = PackageManager("micromamba")
    with pytest.raises(PackageManagerError) as excinfo:
        await pm.install_packages("analysis", ["broken"])
    assert excinfo.value.returncode == 3
    assert "PackagesNotFoundError: broken" in str(excinfo.value)
    assert os.path.basename(excinfo.value.command[0]) == "micromamba"
