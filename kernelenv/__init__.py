from pydantic import BaseModel

from ._version import __version__  # noqa: F401


class Config(BaseModel):
    model_config = {"extra": "forbid"}
