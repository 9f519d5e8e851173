import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, File, UploadFile, status
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from classifieds import schemas, models
from classifieds.dependencies import get_current_profile
from classifieds.core.config import settings
from classifieds.helper.image_optimizer import optimize_image

logger = logging.getLogger(__name__)

router = APIRouter()

# Cloudinary config
cloudinary.config(
    cloud_name=settings.CLOUDINARY_CLOUD_NAME,
    api_key=settings.CLOUDINARY_API_KEY,
    api_secret=settings.CLOUDINARY_API_SECRET.get_secret_value() if settings.CLOUDINARY_API_SECRET else None,
)


@router.post("", response_model=schemas.UploadResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    optimized = await optimize_image(file=file)
    if isinstance(optimized, dict) and "error" in optimized:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=optimized["error"])
    optimize_file, image_format = optimized

    try:
        result = cloudinary.uploader.upload(
            optimize_file,
            folder=f"{settings.CLOUDINARY_FOLDER}/{profile.id}",
            public_id=uuid.uuid4().hex,
            format=image_format,
            resource_type="image",
        )
    except CloudinaryError as e:
        logger.error("Image upload failed for user %s: %s", profile.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload image")

    url = result.get("secure_url")
    if not url:
        logger.error("Image upload for user %s returned no URL", profile.id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload image")
    return {"url": url}
