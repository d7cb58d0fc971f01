from typing import NamedTuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class GeneralError(BaseModel):
    message: str
    error_code: int


class CamelModel(BaseModel):
    """Wire model that speaks camelCase but accepts snake_case too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ComponentHealth(NamedTuple):
    status: str  # "HEALTHY", "UNHEALTHY", "UNKNOWN"
    last_heartbeat: str | None
    details: str | None
