# app/api/v1/schemas/uploads.py
from pydantic import BaseModel


class UploadResponse(BaseModel):
    url: str
    content_type: str
    size: int
    file_name: str
