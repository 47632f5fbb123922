# app/api/v1/endpoints/uploads.py
from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from app.api.v1.schemas.uploads import UploadResponse
from app.auth.dependencies import get_request_context
from app.core import tracing
from app.core.config import settings
from app.core.context import RequestContext
from app.core.rate_limit import rate_limit
from app.exceptions.domain import BadRequestError
from app.services.registry import ServiceRegistry, get_services

router = APIRouter()


@router.post("/", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
@rate_limit(operation_type="write")
async def upload_file(
        request: Request,
        file: UploadFile = File(...),
        ctx: RequestContext = Depends(get_request_context),
        services: ServiceRegistry = Depends(get_services)
):
    """
    Store a file and return its public URL, to be referenced from ticket
    or comment attachments.
    """
    user = ctx.require_principal()
    content_type = file.content_type or "application/octet-stream"
    if content_type not in settings.allowed_upload_types_list:
        raise BadRequestError(f"File type '{content_type}' is not allowed")

    # Read one byte past the limit so oversized files are detected without loading them whole
    data = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise BadRequestError("Uploaded file is empty")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise BadRequestError(f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte limit")

    file_name = file.filename or "upload"
    stored = await services.upload_sink.store(file_name, content_type, data)
    tracing.info("File uploaded", user_id=user.id, file_name=file_name, size=stored.size)

    return UploadResponse(
        url=stored.url,
        content_type=stored.content_type,
        size=stored.size,
        file_name=file_name
    )
