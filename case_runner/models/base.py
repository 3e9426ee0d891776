"""Base model configuration for lifecycle records."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Immutable record that rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")
