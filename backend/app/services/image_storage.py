"""
Upload des photos (profil, capture de paiement) vers S3.
Retourne l'URL publique de l'objet ; les erreurs transitoires sont retentées.
"""

import logging
import uuid
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from app.config import settings
from app.services.errors import UpstreamFatalError
from app.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/heic": "heic"}
TRANSIENT_S3_CODES = {"SlowDown", "RequestTimeout", "InternalError", "ServiceUnavailable", "Throttling"}


def is_transient_s3_error(exc: Exception) -> bool:
    if isinstance(exc, EndpointConnectionError):
        return True
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code") in TRANSIENT_S3_CODES
    return isinstance(exc, BotoCoreError)


@lru_cache(maxsize=1)
def get_s3_client():
    """Client boto3 construit une fois par process."""
    return boto3.client("s3", region_name=settings.S3_REGION)


def public_url(key: str) -> str:
    if settings.S3_PUBLIC_BASE_URL:
        return f"{settings.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    return f"https://{settings.S3_BUCKET}.s3.{settings.S3_REGION}.amazonaws.com/{key}"


class ImageUploader:
    """Collaborateur injectable : upload(contenu, content_type, dossier) → URL."""

    def __init__(self, client=None, bucket: str = ""):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def upload(self, content: bytes, content_type: str, folder: str) -> str:
        if not self.bucket:
            raise UpstreamFatalError("S3_BUCKET n'est pas configuré.")

        extension = ALLOWED_IMAGE_TYPES.get(content_type, "bin")
        key = f"{folder}/{uuid.uuid4().hex}.{extension}"

        try:
            retry_with_backoff(
                lambda: self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=content, ContentType=content_type,
                ),
                label=f"S3 upload {key}",
                is_transient=is_transient_s3_error,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamFatalError(f"Échec de l'upload de l'image : {exc}") from exc

        logger.info("Image envoyée sur S3 : %s", key)
        return public_url(key)


def get_image_uploader() -> ImageUploader:
    """Dépendance FastAPI (surchargée dans les tests)."""
    return ImageUploader()
