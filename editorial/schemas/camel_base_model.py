from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base for request and response bodies.

    Clients send and receive camelCase keys (``expectedVersion``,
    ``assignedReviewerId``); Python code uses the snake_case field names.
    Models can be built straight from ORM rows (``from_attributes``), and
    status enums, dates and timestamps serialize to plain strings.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_serializer("*")
    def serialize_any(self, value):
        if value is None:
            return None

        # Nested models keep their own aliases
        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True)

        if isinstance(value, Enum):
            return value.value

        # date is a superclass of datetime; both render as ISO 8601
        if isinstance(value, (datetime, date)):
            return value.isoformat()

        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.serialize_any(item) for item in value]

        if isinstance(value, dict):
            return {key: self.serialize_any(val) for key, val in value.items()}

        return value
