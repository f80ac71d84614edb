from pathlib import Path
from setuptools import setup, find_packages

here = Path(__file__).parent
version_ns = {}
with open(here / "kernelenv" / "_version.py") as f:
    exec(f.read(), {}, version_ns)

setup(
    name="kernelenv",
    version=version_ns["__version__"],
    description="Set up conda environments and Jupyter kernels on a shared cluster",
    packages=find_packages(include=["kernelenv", "kernelenv.*"]),
    python_requires=">=3.10",
    install_requires=[
        "anyio>=4",
        "click>=8.2",
        "pydantic>=2",
        "pyyaml",
        "rich-click",
        "structlog",
    ],
    extras_require={
        "test": [
            "black",
            "mypy",
            "flake8",
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "kernelenv = kernelenv.cli:main",
        ],
    },
    classifiers=(
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
    ),
)
