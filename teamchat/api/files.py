"""Files API router — attachment upload and download links."""

from typing import Optional
from fastapi import APIRouter, Depends, UploadFile, File, Query
from sqlalchemy.orm import Session

from teamchat.db.session import get_db
from teamchat.schemas.schemas import FileOut, FileDownload
from teamchat.services.file_service import file_service
from teamchat.core.security import get_current_user
from teamchat.models.user import User

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/upload", response_model=FileOut, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    channel_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Upload an attachment to MinIO."""
    return await file_service.upload_file(db, file, user, channel_id)


@router.get("/{file_id}", response_model=FileDownload)
async def get_file(file_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """File metadata plus a short-lived download URL."""
    meta = file_service.get_file(db, file_id, user)
    return FileDownload(file=FileOut.model_validate(meta), url=file_service.get_presigned_url(meta.object_key))
