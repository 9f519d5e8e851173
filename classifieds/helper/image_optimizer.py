import io

from PIL import Image, UnidentifiedImageError

from classifieds.core.config import settings

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


async def optimize_image(file, max_size=(2048, 2048), quality=85):
    """
    Validates an uploaded image and re-encodes it for storage.

    :param file: An UploadFile.
    :param max_size: A tuple of the maximum width and height of the stored image.
    :param quality: JPEG/WebP quality (1-95).
    :return: A tuple of (file-like object, format), or a dict with an "error" key.
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        return {"error": "Invalid file type. Only images are allowed."}

    img_data = await file.read()
    if not img_data:
        return {"error": "No file provided"}
    if len(img_data) > settings.MAX_UPLOAD_BYTES:
        return {"error": "File size must be less than 5MB"}

    try:
        image = Image.open(io.BytesIO(img_data))
        image.verify()
        # verify() leaves the image unusable, reopen for processing
        image = Image.open(io.BytesIO(img_data))
    except (UnidentifiedImageError, OSError, SyntaxError):
        return {"error": "Cannot identify image file"}

    image_format = (image.format or "JPEG").upper()

    # Re-encoding would drop animation frames
    if image_format == "GIF":
        return io.BytesIO(img_data), "gif"

    image.thumbnail(max_size)

    if image_format == "JPEG" and image.mode in ("RGBA", "P", "LA"):
        image = image.convert("RGB")

    optimized = io.BytesIO()
    if image_format in ("JPEG", "WEBP"):
        image.save(optimized, format=image_format, quality=quality)
    else:
        image.save(optimized, format=image_format, optimize=True)
    optimized.seek(0)

    return optimized, image_format.lower()
