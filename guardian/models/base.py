"""
Base model for records stored in the shared tree.

Python attributes are snake_case; the wire shape is camelCase.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for a store write (camelCase keys, no nulls)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]):
        """Parse a store value, returning None for an absent record."""
        if data is None:
            return None
        return cls.model_validate(data)
