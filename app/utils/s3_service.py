import os
import io
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from PIL import Image
import boto3

logger = logging.getLogger(__name__)

FOLDER = "reports"


@lru_cache
def _client():
    return boto3.client(
        service_name="s3",
        endpoint_url=f"https://{os.getenv('CLOUDFLARE_ACCOUNT_ID')}.r2.cloudflarestorage.com",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name="auto",
    )


def _bucket():
    return os.getenv("R2_BUCKET")


def compress_image(data: bytes, max_width=1400, quality=80):
    img = Image.open(io.BytesIO(data))
    img = img.convert("RGB")

    # Resize while keeping aspect ratio
    w, h = img.size
    if w > max_width:
        img = img.resize((max_width, int(h * (max_width / w))), Image.LANCZOS)

    buffer = io.BytesIO()

    try:
        img.save(buffer, format="WEBP", quality=quality, method=6)
        ext = "webp"
    except (OSError, ValueError, KeyError) as e:
        logger.warning(f"WebP failed, falling back to JPEG: {e}")

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        ext = "jpg"

    buffer.seek(0)
    return buffer, ext


def upload_report_image(buffer: io.BytesIO, ext: str, report_type: str, original_name: str) -> str:
    base = os.path.splitext(os.path.basename(original_name or "image"))[0]

    ts = int(datetime.now(timezone.utc).timestamp())
    key = f"{FOLDER}/{report_type}/{base}-{ts}.{ext}"

    _client().upload_fileobj(buffer, _bucket(), key)

    return key


def generate_signed_url(key: Optional[str], expires_in=3600) -> Optional[str]:
    if not key:
        return None

    try:
        return _client().generate_presigned_url(
            "get_object",
            Params={"Bucket": _bucket(), "Key": key},
            ExpiresIn=expires_in,
        )
    except Exception as e:
        logger.error(f"Error generating signed URL: {e}")
        return None


def delete_report_image(key: Optional[str]):
    if not key:
        return

    try:
        _client().delete_object(Bucket=_bucket(), Key=key)
    except Exception as e:
        logger.error(f"Error deleting S3 object {key}: {e}")
