from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for API payloads: camelCase on the wire, snake_case in Python.

    Requests may use either spelling; responses are always camelCase.
    ORM rows can be validated directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
