"""Base for request bodies: unknown fields are a 422, never silently dropped."""

from pydantic import BaseModel, ConfigDict


class StrictRequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)
