"""Tests for blob storage backends and settings."""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from sermon_catalog.config import Settings
from sermon_catalog.errors import ConfigurationError
from sermon_catalog.storage import CloudStorage, LocalStorage, get_storage


def cloud_settings(**overrides):
    values = dict(
        bucket_endpoint="https://ams3.digitaloceanspaces.com",
        bucket_name="sermons",
        bucket_key_id="key",
        bucket_access_key="secret",
        storage_backend="cloud",
    )
    values.update(overrides)
    return Settings(**values)


class TestCloudStorage:
    """Test the S3-compatible backend with a mocked client."""

    def test_save_file_returns_public_url(self):
        client = Mock()
        storage = CloudStorage(cloud_settings(), client=client)

        workspace = storage.create_chunk_workspace("entry-1")
        url = storage.save_file(workspace, "chunk_000_abc.mp3", b"audio")

        assert url == "https://sermons.ams3.digitaloceanspaces.com/chunks/entry-1/chunk_000_abc.mp3"
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Key"] == "chunks/entry-1/chunk_000_abc.mp3"
        assert kwargs["ACL"] == "public-read"

    def test_upload_error(self):
        client = Mock()
        client.put_object.side_effect = ClientError({"Error": {"Code": "500"}}, "PutObject")
        storage = CloudStorage(cloud_settings(), client=client)

        with pytest.raises(RuntimeError):
            storage.save_file("chunks/entry-1/", "chunk.mp3", b"audio")

    def test_file_exist(self):
        client = Mock()
        client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")
        storage = CloudStorage(cloud_settings(), client=client)

        assert not storage.file_exist("chunks/entry-1", "missing.mp3")

    def test_missing_configuration(self):
        with pytest.raises(ConfigurationError):
            CloudStorage(cloud_settings(bucket_endpoint=None))
        with pytest.raises(ConfigurationError):
            CloudStorage(cloud_settings(bucket_key_id=None))


class TestLocalStorage:
    def test_save_and_exists(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        workspace = storage.create_chunk_workspace("entry-1")

        url = storage.save_file(workspace, "chunk_000.mp3", b"audio")

        assert url.startswith("file://")
        assert storage.file_exist(workspace, "chunk_000.mp3")
        assert (tmp_path / "entry-1" / "chunk_000.mp3").read_bytes() == b"audio"

    def test_get_storage_defaults_to_local(self, tmp_path):
        assert isinstance(get_storage(Settings(local_storage_dir=str(tmp_path))), LocalStorage)


class TestSettings:
    """Test environment loading."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AUDIO_WORKER_URL", "http://worker:8000")
        monkeypatch.setenv("CHUNKING_THRESHOLD_MB", "25")
        monkeypatch.setenv("BUCKET_ENDPOINT", "https://ams3.digitaloceanspaces.com")
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)

        settings = Settings.from_env()

        assert settings.audio_worker_url == "http://worker:8000"
        assert settings.chunking_threshold_bytes == 25 * 1024 * 1024
        assert settings.storage_backend == "cloud"

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("CHUNKING_THRESHOLD_MB", "twenty")

        with pytest.raises(ValueError, match="CHUNKING_THRESHOLD_MB"):
            Settings.from_env()
