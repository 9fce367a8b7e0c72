"""
Render storage on S3

Rendered images are written under a tenant-scoped key and served from a
public URL so they can be embedded in replies and stored on leads.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from blindbot.core.config import Settings, get_settings
from blindbot.core.errors import RenderCollaboratorFailed

logger = logging.getLogger(__name__)


class RenderStorageService:
    """Uploads rendered PNGs and returns their public URLs"""

    def __init__(self, settings: Optional[Settings] = None, s3_client=None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.s3_render_bucket
        self.prefix = self.settings.s3_render_prefix.strip("/")

        self.s3_client = s3_client or boto3.client(
            's3',
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            region_name=self.settings.aws_region,
            config=Config(signature_version='s3v4', s3={'addressing_style': 'virtual'})
        )

        logger.info(f"Render storage initialized - bucket: {self.bucket}")

    def build_key(self, tenant_id: str) -> str:
        date_path = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        return f"{self.prefix}/{tenant_id}/{date_path}/{uuid.uuid4().hex}.png"

    def public_url(self, key: str) -> str:
        if self.settings.s3_public_base_url:
            return f"{self.settings.s3_public_base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.settings.aws_region}.amazonaws.com/{key}"

    def upload_render_sync(self, tenant_id: str, image_bytes: bytes) -> str:
        key = self.build_key(tenant_id)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=image_bytes,
                ContentType="image/png",
                CacheControl="public, max-age=31536000"
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload render for tenant {tenant_id}: {e}")
            raise RenderCollaboratorFailed(f"Render upload failed: {e}") from e

        url = self.public_url(key)
        logger.info(f"Render stored for tenant {tenant_id}: {key}")
        return url

    async def upload_render(self, tenant_id: str, image_bytes: bytes) -> str:
        """Upload without blocking the event loop"""
        return await asyncio.to_thread(self.upload_render_sync, tenant_id, image_bytes)
