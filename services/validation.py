from typing import Any, Dict, List, Type

import pydantic
from pydantic import BaseModel

from models.location import AddLocationRequest, PrimaryLocationRequest
from models.post import (
    CreateCommentRequest,
    CreatePostRequest,
    DeleteCommentRequest,
    UpdatePostRequest,
)
from services.errors import ValidationError

SCHEMAS: Dict[str, Type[BaseModel]] = {
    "post-create": CreatePostRequest,
    "post-update": UpdatePostRequest,
    "comment-create": CreateCommentRequest,
    "comment-delete": DeleteCommentRequest,
    "location-add": AddLocationRequest,
    "location-primary": PrimaryLocationRequest,
}


REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")


def field_errors(exc, from_request: bool = False) -> List[Dict[str, str]]:
    """
    Flatten pydantic errors into [{"field", "message"}] pairs.
    Errors raised by FastAPI request parsing start their loc with where the
    value came from ("query", "path" ...); pass from_request=True to drop it.
    """
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if from_request and loc and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        message = error.get("msg", "Invalid value")
        # "Value error, ..." prefix comes from ValueError raised in our own validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": ".".join(loc), "message": message})
    return errors


def validate(schema_name: str, payload: Any) -> BaseModel:
    """
    Check a raw payload against a named schema.

    Returns the normalized model, or raises ValidationError carrying
    field-level messages. An unknown schema name raises KeyError.
    """
    schema = SCHEMAS[schema_name]
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = field_errors(e)
        message = errors[0]["message"] if errors else ValidationError.message
        raise ValidationError(message, errors=errors) from e
