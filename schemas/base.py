from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request/response body with camelCase names on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(ApiModel):
    success: bool = True
    message: Optional[str] = None
