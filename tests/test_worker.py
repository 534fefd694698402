"""Tests for the worker service, downloader and segmenter."""

import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests
from fastapi.testclient import TestClient

from sermon_catalog.db import TranscriptionStatus
from sermon_catalog.errors import MediaDownloadError, SegmentationError
from sermon_catalog.worker import downloader
from sermon_catalog.worker.segmenter import segment_audio
from sermon_catalog.worker.server import create_app


class TestWorkerServer:
    """Test the HTTP surface of the worker."""

    @pytest.fixture
    def pipeline(self):
        pipeline = Mock()
        pipeline.run.return_value = TranscriptionStatus.COMPLETED
        return pipeline

    @pytest.fixture
    def client(self, pipeline):
        return TestClient(create_app(lambda: pipeline))

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_transcribe_accepted_and_run_in_background(self, client, pipeline):
        response = client.post(
            "/transcribe",
            json={"episodeId": "entry-1", "audioUrl": "https://cdn.example.com/a.mp3"},
        )

        assert response.status_code == 202
        assert response.json() == {"accepted": True}
        pipeline.run.assert_called_once_with("entry-1", "https://cdn.example.com/a.mp3")

    def test_missing_field_is_rejected(self, client, pipeline):
        response = client.post("/transcribe", json={"episodeId": "entry-1"})

        assert response.status_code == 400
        pipeline.run.assert_not_called()


class TestDownloader:
    """Test media download routing and retries."""

    def test_video_platform_detection(self):
        assert downloader.is_video_platform_url("https://www.youtube.com/watch?v=abc")
        assert downloader.is_video_platform_url("https://youtu.be/abc")
        assert not downloader.is_video_platform_url("https://mcdn.podbean.com/ep.mp3")
        assert not downloader.is_video_platform_url("https://notyoutube.com/ep.mp3")

    @patch("sermon_catalog.worker.downloader.requests.get")
    def test_direct_download(self, mock_get, tmp_path):
        response = Mock()
        response.iter_content.return_value = [b"x" * (200 * 1024)]
        mock_get.return_value = response

        path = downloader.download_media("https://mcdn.podbean.com/ep.m4a", tmp_path)

        assert path == tmp_path / "input.m4a"
        assert path.stat().st_size == 200 * 1024

    @patch("sermon_catalog.worker.downloader.requests.get")
    def test_direct_download_retries_then_fails(self, mock_get, tmp_path):
        mock_get.side_effect = requests.ConnectionError("reset")
        waits = []

        with pytest.raises(MediaDownloadError, match="after 3 attempts"):
            downloader.download_direct(
                "https://mcdn.podbean.com/ep.mp3", tmp_path, sleep=waits.append
            )
        assert waits == [1, 2]

    @patch("sermon_catalog.worker.downloader.requests.get")
    def test_too_small_file_is_rejected(self, mock_get, tmp_path):
        response = Mock()
        response.iter_content.return_value = [b"<html>error</html>"]
        mock_get.return_value = response

        with pytest.raises(MediaDownloadError):
            downloader.download_direct(
                "https://mcdn.podbean.com/ep.mp3", tmp_path, sleep=lambda s: None
            )
        assert not (tmp_path / "input.mp3").exists()

    @patch("sermon_catalog.worker.downloader.YoutubeDL")
    def test_video_url_uses_ytdlp(self, mock_ydl_class, tmp_path):
        target = tmp_path / "input.webm"
        target.write_bytes(b"audio")
        ydl = mock_ydl_class.return_value.__enter__.return_value
        ydl.extract_info.return_value = {"id": "abc", "ext": "webm"}
        ydl.prepare_filename.return_value = str(target)

        path = downloader.download_media("https://www.youtube.com/watch?v=abc", tmp_path)

        assert path == target
        opts = mock_ydl_class.call_args.args[0]
        assert opts["format"] == "bestaudio/best"
        ydl.extract_info.assert_called_once_with("https://www.youtube.com/watch?v=abc", download=True)


class TestSegmenter:
    """Test the ffmpeg invocation."""

    @patch("sermon_catalog.worker.segmenter.subprocess.run")
    def test_segment_command_and_output(self, mock_run, tmp_path):
        outdir = tmp_path / "chunks"

        def fake_ffmpeg(command, **kwargs):
            for i in range(3):
                (outdir / f"chunk_{i:03d}.mp3").write_bytes(b"a")
            return Mock(returncode=0)

        mock_run.side_effect = fake_ffmpeg

        chunks = segment_audio(tmp_path / "input.mp3", outdir, 600)

        assert [c.name for c in chunks] == ["chunk_000.mp3", "chunk_001.mp3", "chunk_002.mp3"]
        command = mock_run.call_args.args[0]
        assert command[0] == "ffmpeg"
        for flag, value in (("-acodec", "libmp3lame"), ("-b:a", "64k"), ("-ar", "16000"),
                            ("-ac", "1"), ("-segment_time", "600"), ("-reset_timestamps", "1")):
            assert command[command.index(flag) + 1] == value
        assert command[-1] == str(outdir / "chunk_%03d.mp3")
        assert mock_run.call_args.kwargs["check"] is True

    @patch("sermon_catalog.worker.segmenter.subprocess.run")
    def test_missing_ffmpeg(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("ffmpeg")

        with pytest.raises(SegmentationError, match="install ffmpeg"):
            segment_audio(tmp_path / "input.mp3", tmp_path / "chunks")

    @patch("sermon_catalog.worker.segmenter.subprocess.run")
    def test_ffmpeg_failure(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.CalledProcessError(1, "ffmpeg", stderr="Invalid data found")

        with pytest.raises(SegmentationError, match="Invalid data found"):
            segment_audio(tmp_path / "input.mp3", tmp_path / "chunks")

    @patch("sermon_catalog.worker.segmenter.subprocess.run")
    def test_no_chunks_produced(self, mock_run, tmp_path):
        mock_run.return_value = Mock(returncode=0)

        with pytest.raises(SegmentationError, match="no chunks"):
            segment_audio(Path(tmp_path / "input.mp3"), tmp_path / "chunks")
