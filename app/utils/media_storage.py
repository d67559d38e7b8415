import io
import logging
from functools import lru_cache
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from app.utils.exceptions import ValidationFailed, MediaUploadFailed
from config import (
    AWS_KEY_ID, AWS_SECRET_KEY, S3_ENDPOINT_URL, S3_REGION, S3_BUCKET, MEDIA_PUBLIC_BASE_URL
)

logger = logging.getLogger(__name__)


class MediaStorage:
    """Image hosting on an S3-compatible bucket."""

    ALLOWED_FORMATS = {'JPEG', 'PNG', 'GIF', 'WEBP'}

    # Maximum upload size (10MB)
    MAX_FILE_SIZE = 10 * 1024 * 1024

    # Images are downscaled to fit these bounds
    MAX_IMAGE_DIMENSIONS = (1080, 1080)

    EXTENSION = 'jpg'

    def __init__(self, bucket: str = S3_BUCKET, public_base_url: str = MEDIA_PUBLIC_BASE_URL):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip('/')
        self._client = None

    def _get_s3_client(self):
        if self._client is None:
            config = Config(
                region_name=S3_REGION,
                s3={
                    'addressing_style': 'virtual'
                },
                retries={'max_attempts': 3},
            )
            self._client = boto3.client(
                's3',
                endpoint_url=S3_ENDPOINT_URL,
                aws_access_key_id=AWS_KEY_ID,
                aws_secret_access_key=AWS_SECRET_KEY,
                region_name=S3_REGION,
                config=config
            )
        return self._client

    @classmethod
    def prepare_image(cls, image_data: bytes) -> bytes:
        """Validate an uploaded image and re-encode it as an optimized JPEG."""
        if not image_data:
            raise ValidationFailed("Image file is required")
        if len(image_data) > cls.MAX_FILE_SIZE:
            raise ValidationFailed("Image too large")

        try:
            with Image.open(io.BytesIO(image_data)) as img:
                if img.format not in cls.ALLOWED_FORMATS:
                    raise ValidationFailed("Invalid image format")

                img = img.convert('RGBA') if img.mode in ('RGBA', 'LA', 'P') else img.convert('RGB')
                img.thumbnail(cls.MAX_IMAGE_DIMENSIONS)

                if img.mode == 'RGBA':
                    background = Image.new('RGB', img.size, (255, 255, 255))
                    background.paste(img, mask=img.split()[-1])
                    img = background

                output = io.BytesIO()
                img.save(output, format='JPEG', quality=85, optimize=True)
                return output.getvalue()
        except (UnidentifiedImageError, OSError) as e:
            logger.info(f"Rejected image upload: {str(e)}")
            raise ValidationFailed("Invalid image format")

    def object_key(self, public_id: str) -> str:
        return f"{public_id}.{self.EXTENSION}"

    def public_url(self, public_id: str) -> str:
        return f"{self.public_base_url}/{self.object_key(public_id)}"

    def extract_public_id(self, url: Optional[str]) -> Optional[str]:
        """Inverse of public_url: 'https://host/bucket/folder/name.jpg' -> 'folder/name'."""
        if not url:
            return None
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            return None
        key = url[len(prefix):]
        public_id, _, extension = key.rpartition('.')
        if not public_id or not extension or '/' in extension:
            return None
        return public_id

    async def upload(self, image_data: bytes, folder: str, public_id: str) -> str:
        """Store the image under folder/public_id and return its public URL."""
        body = await run_in_threadpool(self.prepare_image, image_data)
        full_id = f"{folder.strip('/')}/{public_id}"

        try:
            await run_in_threadpool(
                self._get_s3_client().put_object,
                Bucket=self.bucket,
                Key=self.object_key(full_id),
                Body=body,
                ContentType='image/jpeg'
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload error: {str(e)}")
            raise MediaUploadFailed()

        url = self.public_url(full_id)
        logger.info(f"Image uploaded: {url}")
        return url

    async def delete(self, public_id: str) -> None:
        await run_in_threadpool(
            self._get_s3_client().delete_object,
            Bucket=self.bucket,
            Key=self.object_key(public_id)
        )
        logger.info(f"Image deleted: {public_id}")


async def discard_image(media: "MediaStorage", image_url: Optional[str]) -> None:
    """Best-effort removal of a stored image; failures are logged and dropped."""
    try:
        public_id = media.extract_public_id(image_url)
        if public_id:
            await media.delete(public_id)
    except Exception as e:
        logger.warning(f"Image delete error (non-critical): {str(e)}")


@lru_cache
def get_media_storage() -> MediaStorage:
    return MediaStorage()
