from __future__ import annotations


class KernelEnvError(Exception):
    pass


class CondaRCError(KernelEnvError):
    pass


class LauncherError(KernelEnvError):
    pass


class NoSuchKernel(KernelEnvError):
    def __init__(self, name: str):
        super().__init__(f"No such kernel: {name}")
        self.name = name


class KernelExistsError(KernelEnvError):
    def __init__(self, name: str, path):
        super().__init__(f"Kernel {name} already exists in {path}, use replace to overwrite it")
        self.name = name
        self.path = path


class PackageManagerNotFound(KernelEnvError):
    def __init__(self, name: str):
        super().__init__(f"Package manager not found: {name}")
        self.name = name


class PackageManagerError(KernelEnvError):
    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        message = f"Command failed with exit code {returncode}: {' '.join(command)}"
        if stderr:
            message = f"{message}\n{stderr.rstrip()}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class EnvironmentNotFound(KernelEnvError):
    def __init__(self, name: str, envs_dirs=()):
        searched = ", ".join(str(d) for d in envs_dirs)
        message = f"Environment not found: {name}"
        if searched:
            message = f"{message} (searched {searched})"
        super().__init__(message)
        self.name = name


class InterpreterNotFound(KernelEnvError):
    def __init__(self, prefix):
        super().__init__(f"No Python interpreter in environment {prefix}")
        self.prefix = prefix


class ValidationError(KernelEnvError):
    def __init__(self, problems):
        self.problems = list(problems)
        lines = [str(problem) for problem in self.problems]
        super().__init__("\n".join(["Validation failed:"] + lines))


class InvalidKernelName(KernelEnvError):
    def __init__(self, name: str):
        super().__init__(
            f"Invalid kernel name {name!r}, use letters, digits, '.', '_' and '-' only"
        )
        self.name = name
