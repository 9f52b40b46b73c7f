"""
Media upload endpoint.

Turns an uploaded file into the data: reference the flows accept. This is
where arbitrary user files (PDF, image, audio) enter the system.
"""
from fastapi import APIRouter, File, HTTPException, UploadFile

from ..models.flows import MediaEncodeData, MediaEncodeResponse
from studyflow.pipeline.errors import UnsupportedMediaError
from studyflow.pipeline.media import encode

router = APIRouter()

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.post("/encode", response_model=MediaEncodeResponse)
async def encode_upload(file: UploadFile = File(...)):
    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File is larger than {MAX_UPLOAD_BYTES} bytes")

    try:
        ref = encode(data, file.content_type or "")
    except UnsupportedMediaError as e:
        raise HTTPException(status_code=415, detail=e.message)

    return MediaEncodeResponse(
        success=True,
        message=f"Encoded {file.filename}",
        data=MediaEncodeData(mediaRef=ref.uri, mimeType=ref.mime_type, size=len(ref.data)),
    )
