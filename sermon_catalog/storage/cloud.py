import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseStorage
from sermon_catalog.config import Settings
from sermon_catalog.errors import ConfigurationError
from sermon_catalog.logger import setup_logging


logger = setup_logging(logger_name="storage", log_file="logs/storage.log")


class CloudStorage(BaseStorage):
    """S3-compatible object storage (DigitalOcean Spaces, S3, MinIO...)."""

    def __init__(self, settings: Settings, client=None):
        if not settings.bucket_endpoint or not settings.bucket_name:
            raise ConfigurationError(
                "Missing cloud storage configuration."
                " Please set BUCKET_ENDPOINT and BUCKET_NAME (and credentials)."
            )
        if client is None and (not settings.bucket_key_id or not settings.bucket_access_key):
            raise ConfigurationError(
                "Missing cloud storage credentials."
                " Please set BUCKET_KEY_ID and BUCKET_ACCESS_KEY."
            )

        self.bucket_name = settings.bucket_name
        self.endpoint = settings.bucket_endpoint.rstrip("/")

        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                region_name=settings.bucket_region,
                endpoint_url=self.endpoint,
                aws_access_key_id=settings.bucket_key_id,
                aws_secret_access_key=settings.bucket_access_key,
            )
        self.client = client

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """Public virtual-hosted URL: protocol://bucket.host/workspace/filename."""
        protocol, _, host = self.endpoint.partition("://")
        return f"{protocol}://{self.bucket_name}.{host}/{self._normalize_workspace(workspace)}{filename}"

    def file_exist(self, workspace: str, filename: str) -> bool:
        key = f"{self._normalize_workspace(workspace)}{filename}"
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def create_chunk_workspace(self, entry_id: str) -> str:
        return f"chunks/{entry_id}/"

    def save_file(self, workspace: str, filename: str, content: bytes) -> str:
        """Upload bytes as a public-read object and return its URL."""
        key = f"{self._normalize_workspace(workspace)}{filename}"
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ACL="public-read",
                ContentType="audio/mpeg",
            )
        except (ClientError, BotoCoreError) as e:
            raise RuntimeError(f"Error saving file to cloud storage: {e}") from e

        logger.debug(f"Uploaded {key} ({len(content)} bytes)")
        return self._get_absolute_filename(workspace, filename)
