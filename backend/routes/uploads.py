# backend/routes/uploads.py

import io
import logging

from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from config.constants import UPLOAD_ROUTES
from utils.cloudinary import UploadFailed, get_uploader
from utils.security import get_current_user

router = APIRouter(prefix="/uploads", tags=["Uploads"])
logger = logging.getLogger(__name__)


def _content_type_allowed(content_type: str | None, allowed: tuple) -> bool:
    if not content_type:
        return False
    for rule in allowed:
        # "audio/" style rules match a whole family
        if rule.endswith("/") and content_type.startswith(rule):
            return True
        if content_type == rule:
            return True
    return False


# =========================
# UPLOAD SHEET MUSIC / AUDIO / PROFILE IMAGE
# =========================
@router.post("/{route}")
async def upload_file(
    route: str,
    file: UploadFile = File(...),
    user=Depends(get_current_user),
    uploader=Depends(get_uploader),
):
    config = UPLOAD_ROUTES.get(route)
    if not config:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Unknown upload route")

    # validate file type
    if not _content_type_allowed(file.content_type, config["content_types"]):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type {file.content_type or 'unknown'} is not allowed for {route}",
        )

    # validate size
    content = await file.read()
    if len(content) > config["max_bytes"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds the {config['max_bytes'] // (1024 * 1024)}MB limit",
        )

    try:
        url = await run_in_threadpool(
            uploader,
            io.BytesIO(content),
            folder=f"{config['folder']}/{user['_id']}",
            resource_type=config["resource_type"],
        )
    except UploadFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed",
        )

    logger.info("User %s uploaded %s file", user["_id"], route)
    return {"url": url}
