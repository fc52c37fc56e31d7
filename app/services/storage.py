from __future__ import annotations

import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.errors import NotFoundError, UpstreamError
from app.utils.aws import make_boto_client, parse_s3_uri

logger = logging.getLogger(__name__)

DOWNLOAD_URL_TTL_SECONDS = 900


def download_url(file_url: Optional[str], *, s3_client=None, expires_in: int = DOWNLOAD_URL_TTL_SECONDS) -> Optional[str]:
    """Return a link the browser can fetch; ``s3://`` locations get a presigned URL."""
    if not file_url:
        return None
    if not file_url.startswith("s3://"):
        return file_url
    try:
        bucket, key = parse_s3_uri(file_url)
    except ValueError as exc:
        logger.warning("Stored file location is malformed: %s", file_url)
        raise NotFoundError("The file for this item could not be located.") from exc
    client = s3_client or make_boto_client("s3")
    try:
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Failed to presign %s", file_url)
        raise UpstreamError("Download link could not be created.") from exc
