"""Setup data models."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ModelInfo(BaseModel):
    """LLM model offered by the backend."""

    id: str
    name: str


class SetupStatus(BaseModel):
    """Whether the client has been configured with a default model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_configured: bool = False
    configured_model_id: str | None = None


class SetupRequest(BaseModel):
    """Initial setup form payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    model_id: str
    api_key: str | None = None
