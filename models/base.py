"""Base model with camelCase serialization for API input/output."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every wire model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-safe camelCase dict, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
