from typing import TypeVar

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

Payload = TypeVar("Payload", bound=BaseModel)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def parse_payload(
        request: Request,
        schema: type[Payload],
        file_field: str | None = None,
) -> tuple[Payload, UploadFile | None]:
    """
    Reads a write request sent either as JSON or as a (multipart) form.
    Forms may carry an image in ``file_field``; JSON bodies never do.
    """
    content_type = request.headers.get("content-type", "")
    upload = None

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        data = {key: value for key, value in form.items() if not isinstance(value, UploadFile)}
        if file_field:
            candidate = form.get(file_field)
            if isinstance(candidate, UploadFile) and candidate.filename:
                upload = candidate
    else:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request body must be valid JSON"
            )
        if not isinstance(data, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request body must be a JSON object"
            )

    try:
        payload = schema.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False))

    return payload, upload
