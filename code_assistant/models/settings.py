"""Per-session query settings."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class QuerySettings(BaseModel):
    """Parameters sent with every outbound query.

    Stored under camelCase keys, e.g. ``{"llmMaxNewTokens": 1024}``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    temperature: float = 0.7
    llm_max_new_tokens: int = 1024
    model_id: str | None = None
    use_re_ranker: bool | None = True
    reranker_model_name: str | None = None
    re_ranker_top_n: int | None = 3


DEFAULT_QUERY_SETTINGS = QuerySettings()
