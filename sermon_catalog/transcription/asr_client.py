"""
Speech-recognition client (Whisper large-v3 behind the Hugging Face router).

Tries an ordered list of endpoint/encoding pairs:
    1. hf-inference, raw audio bytes
    2. hf-inference, base64 JSON (only for payloads under the size cutoff)
    3. fal-ai provider, raw audio bytes

Errors are typed:
    ASRBadRequestError, ASRAuthError   non-retryable, stop trying endpoints
    ASRTransientError, ASRRateLimitError  retried with exponential backoff at
                                       the same endpoint, then the next endpoint
    ASREndpointNotFoundError           move to the next endpoint immediately
"""

import base64
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlparse

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sermon_catalog.errors import ConfigurationError
from sermon_catalog.logger import setup_logging


logger = setup_logging(logger_name="asr_client", log_file="logs/asr_client.log")

HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models/openai/whisper-large-v3"
FAL_AI_URL = "https://router.huggingface.co/fal-ai/models/openai/whisper-large-v3"

BASE64_MAX_BYTES = 10 * 1024 * 1024  # base64 adds ~33%, counterproductive above this
REQUEST_TIMEOUT_SECONDS = 300
DOWNLOAD_TIMEOUT_SECONDS = 120

CONTENT_TYPES = {
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".webm": "audio/webm",
}


# Error classification


class ASRError(Exception):
    """Base class for speech-recognition errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableASRError(ASRError):
    """Errors that may succeed when retried."""

    pass


class ASRTransientError(RetryableASRError):
    """Server error, timeout or network failure."""

    pass


class ASRModelLoadingError(ASRTransientError):
    """503 while the model is being loaded; waits grow with the attempt number."""

    pass


class ASRRateLimitError(RetryableASRError):
    """429 Too Many Requests."""

    pass


class NonRetryableASRError(ASRError):
    """Errors that no endpoint or retry can fix."""

    pass


class ASRBadRequestError(NonRetryableASRError):
    """400: the audio or request format was rejected."""

    pass


class ASRAuthError(NonRetryableASRError):
    """401/403: the token is invalid or lacks inference permission."""

    pass


class ASREndpointNotFoundError(ASRError):
    """404: provider or model unavailable at this endpoint."""

    pass


class ASREmptyTranscriptError(ASRError):
    """The endpoint answered 200 without any text."""

    pass


def classify_http_error(status_code: int, error_message: str = "") -> ASRError:
    """
    Map an HTTP status from the ASR service to a typed error.

    Example:
        if response.status_code != 200:
            raise classify_http_error(response.status_code, response.text)
    """
    message = (error_message or "").strip()[:500]
    if status_code == 400:
        return ASRBadRequestError(f"Bad request (HTTP 400): {message}", status_code)
    if status_code in (401, 403):
        hint = ""
        if "permission" in message.lower() or "inference providers" in message.lower():
            hint = " (token may lack the 'Make calls to Inference Providers' permission)"
        return ASRAuthError(
            f"Authentication failed (HTTP {status_code}){hint}: {message}", status_code
        )
    if status_code == 404:
        return ASREndpointNotFoundError(f"Endpoint not found (HTTP 404): {message}", status_code)
    if status_code == 429:
        return ASRRateLimitError(f"Rate limit exceeded: {message}", status_code)
    if status_code == 503 and "loading" in message.lower():
        return ASRModelLoadingError(f"Model loading (HTTP 503): {message}", status_code)
    if status_code == 408 or 500 <= status_code < 600:
        return ASRTransientError(f"Server error (HTTP {status_code}): {message}", status_code)
    return NonRetryableASRError(f"HTTP error {status_code}: {message}", status_code)


# Retry configuration


class RetryConfig:
    """Backoff settings for attempts at a single endpoint."""

    def __init__(
        self,
        max_attempts: int = 3,
        min_wait_seconds: float = 5,
        max_wait_seconds: float = 30,
        model_loading_wait_seconds: float = 10,
    ):
        self.max_attempts = max_attempts
        self.min_wait_seconds = min_wait_seconds
        self.max_wait_seconds = max_wait_seconds
        self.model_loading_wait_seconds = model_loading_wait_seconds


DEFAULT_RETRY_CONFIG = RetryConfig()

# No waiting, for tests
TEST_RETRY_CONFIG = RetryConfig(
    max_attempts=3, min_wait_seconds=0, max_wait_seconds=0, model_loading_wait_seconds=0
)


def log_retry_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        logger.warning(
            f"ASR attempt {retry_state.attempt_number} failed: "
            f"{type(exception).__name__}: {exception}"
        )


def _wait_strategy(config: RetryConfig) -> Callable[[RetryCallState], float]:
    exponential = wait_exponential(
        multiplier=config.min_wait_seconds, max=config.max_wait_seconds
    )

    def wait(retry_state: RetryCallState) -> float:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exception, ASRModelLoadingError):
            return config.model_loading_wait_seconds * retry_state.attempt_number
        return exponential(retry_state)

    return wait


# Response parsing


def content_type_for(filename: str) -> str:
    """Audio MIME type from the file (or URL path) extension."""
    suffix = PurePosixPath(urlparse(filename).path or filename).suffix.lower()
    return CONTENT_TYPES.get(suffix, "audio/mpeg")


def parse_transcription_payload(payload: Any) -> str:
    """
    Extract text from the shapes the service returns.

    Accepts {"text": ...}, a plain string, a list of segments with "text",
    or {"chunks": [{"text": ...}, ...]}.
    """
    if isinstance(payload, str):
        return payload.strip()
    if isinstance(payload, dict):
        if isinstance(payload.get("text"), str):
            return payload["text"].strip()
        if isinstance(payload.get("chunks"), list):
            return " ".join(
                (chunk.get("text") or "").strip()
                for chunk in payload["chunks"]
                if isinstance(chunk, dict)
            ).strip()
        return ""
    if isinstance(payload, list):
        return " ".join(
            (segment.get("text") or "").strip()
            for segment in payload
            if isinstance(segment, dict)
        ).strip()
    return ""


@dataclass(frozen=True)
class ASREndpoint:
    url: str
    provider: str
    encoding: str  # "raw" or "base64"

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.encoding}"


DEFAULT_ENDPOINTS = (
    ASREndpoint(HF_INFERENCE_URL, "hf-inference", "raw"),
    ASREndpoint(HF_INFERENCE_URL, "hf-inference", "base64"),
    ASREndpoint(FAL_AI_URL, "fal-ai", "raw"),
)


class ASRClient:
    """
    Client for the speech-recognition service.

    Args:
        api_key: Hugging Face token (HUGGINGFACE_API_KEY)
        endpoints: Ordered endpoint/encoding pairs to try
        base64_max_bytes: Largest payload sent as base64 JSON
        retry_config: Backoff at a single endpoint (default: DEFAULT_RETRY_CONFIG)
        session: requests.Session to reuse
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        api_key: Optional[str],
        endpoints: Sequence[ASREndpoint] = DEFAULT_ENDPOINTS,
        base64_max_bytes: int = BASE64_MAX_BYTES,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.endpoints = tuple(endpoints)
        self.base64_max_bytes = base64_max_bytes
        self.retry_config = retry_config
        self.session = session or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    def transcribe_url(self, audio_url: str) -> str:
        """Download an audio asset and transcribe it."""
        logger.info(f"Downloading audio for transcription: {audio_url[:100]}")
        try:
            response = self.session.get(audio_url, timeout=DOWNLOAD_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise ASRTransientError(f"Failed to download audio: {e}") from e
        if response.status_code != 200:
            raise ASRTransientError(
                f"Failed to download audio (HTTP {response.status_code})", response.status_code
            )
        return self.transcribe_bytes(response.content, filename=audio_url)

    def transcribe_bytes(self, audio: bytes, filename: str = "audio.mp3") -> str:
        """
        Transcribe raw audio bytes, falling back across endpoints.

        Raises:
            ConfigurationError: If no API key is configured
            ASRBadRequestError, ASRAuthError: Immediately, without trying further endpoints
            ASRError: The last error when every endpoint failed
        """
        if not self.api_key:
            raise ConfigurationError("HUGGINGFACE_API_KEY is not set")
        if not audio:
            raise ASRBadRequestError("Empty audio payload")

        content_type = content_type_for(filename)
        size_mb = len(audio) / (1024 * 1024)
        last_error: Optional[ASRError] = None

        for endpoint in self.endpoints:
            if endpoint.encoding == "base64" and len(audio) > self.base64_max_bytes:
                logger.info(f"Skipping {endpoint.label}: {size_mb:.1f} MB is above the base64 cutoff")
                continue

            logger.info(f"Trying {endpoint.label} ({size_mb:.2f} MB, {content_type})")
            try:
                text = self._call_with_retry(endpoint, audio, content_type)
                logger.info(f"Transcribed with {endpoint.label}: {len(text)} characters")
                return text
            except NonRetryableASRError as e:
                logger.error(f"{endpoint.label} failed permanently: {e}")
                raise
            except ASRError as e:
                logger.warning(f"{endpoint.label} failed, trying next endpoint: {e}")
                last_error = e

        if last_error is None:
            last_error = ASRTransientError("No ASR endpoint accepted the request")
        raise last_error

    def _call_with_retry(self, endpoint: ASREndpoint, audio: bytes, content_type: str) -> str:
        config = self.retry_config or DEFAULT_RETRY_CONFIG
        retrying = Retrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=_wait_strategy(config),
            retry=retry_if_exception_type(RetryableASRError),
            before_sleep=log_retry_attempt,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(self._post, endpoint, audio, content_type)

    def _post(self, endpoint: ASREndpoint, audio: bytes, content_type: str) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if endpoint.encoding == "base64":
                response = self.session.post(
                    endpoint.url,
                    headers=headers,
                    json={"inputs": base64.b64encode(audio).decode("ascii")},
                    timeout=self.timeout,
                )
            else:
                headers["Content-Type"] = content_type
                response = self.session.post(
                    endpoint.url, headers=headers, data=audio, timeout=self.timeout
                )
        except requests.RequestException as e:
            raise ASRTransientError(f"Request to {endpoint.label} failed: {e}") from e

        if response.status_code != 200:
            raise classify_http_error(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        text = parse_transcription_payload(payload)
        if not text:
            raise ASREmptyTranscriptError(f"{endpoint.label} returned no text", 200)
        return text
