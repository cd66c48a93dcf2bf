import logging
import shutil
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ... import models, schemas
from ...core import config
from ...core.exceptions import ValidationError
from ...database import get_db_session
from ..deps import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])

ALLOWED_MIME_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


async def _store_image(db: AsyncSession, data: schemas.ImageCreate) -> schemas.ImageOut:
    async with db.begin():
        image = models.Image(**data.model_dump())
        db.add(image)
        await db.flush()
        image_out = schemas.ImageOut.model_validate(image)
    return image_out


@router.post("", response_model=schemas.ImageOut, status_code=201)
async def register_image(
    image_in: schemas.ImageCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    """Metadaten eines bereits gehosteten Bildes registrieren"""
    return await _store_image(db, image_in)


@router.post("/upload", response_model=schemas.ImageOut, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    alt_text: str = Form(None),
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    """
    Nimmt eine Bilddatei entgegen, speichert sie im Upload-Verzeichnis und
    registriert sie mit ihrer öffentlichen URL.
    """
    if file.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("Invalid file type.", details={"allowed": ALLOWED_MIME_TYPES})

    upload_dir = Path(config.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    unique_filename = f"{uuid.uuid4()}{Path(file.filename or '').suffix}"
    file_path = upload_dir / unique_filename
    try:
        with file_path.open("wb") as buffer:
            shutil.copyfileobj(file.file, buffer)
    finally:
        await file.close()
    logger.info("Image stored at %s by user %s", file_path, user_id)

    url = f"{config.APP_DOMAIN_NAME}{config.STATIC_FILES_ROUTE}/{unique_filename}"
    return await _store_image(db, schemas.ImageCreate(url=url, alt_text=alt_text))
