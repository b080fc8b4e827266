"""
Base Pydantic schemas
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base schema with common configuration
    """

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode (SQLAlchemy compatibility)
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=False,  # Return enum objects, not string values
    )


class CamelSchema(BaseSchema):
    """
    API-facing schema: snake_case attributes, camelCase on the wire.

    Routers serialize with ``by_alias=True`` so responses match the public
    contract (``inspectionId``, ``streamUrl`` ...).
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )
