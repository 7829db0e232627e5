from typing import TypeVar

from fastapi import Request
from starlette.datastructures import UploadFile
from pydantic import BaseModel, ValidationError as PydanticValidationError

from shared.helper.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def is_json(request: Request) -> bool:
    return "application/json" in request.headers.get("content-type", "")


def is_multipart(request: Request) -> bool:
    return "multipart/form-data" in request.headers.get("content-type", "")


async def read_json_model(request: Request, model: type[ModelT]) -> ModelT:
    """Parse the JSON request body into a model.

    Raises:
        ValidationError: If the body is not JSON or does not fit the model.
    """
    try:
        raw = await request.json()
    except ValueError:
        raise ValidationError("Request body is not valid JSON")
    try:
        return model.model_validate(raw or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request body: {e.errors()[0].get('msg', 'invalid')}")


async def read_image_bytes(request: Request) -> bytes:
    """Read image bytes from a multipart "file" field or the raw body.

    Raises:
        ValidationError: If the multipart form has no file or the body is empty.
    """
    if is_multipart(request):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise ValidationError("multipart_missing_file_field")
        return await upload.read()
    data = await request.body()
    if not data:
        raise ValidationError("empty_body")
    return data
