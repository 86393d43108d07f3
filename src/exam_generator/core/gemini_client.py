"""
Gemini adapter for the generation boundary.

Uploads reference PDFs to the Gemini File API, waits until they are
processed, and runs generation calls with the files attached.

Key behaviour:
- Local paths are uploaded directly; http(s) URLs are downloaded first
- Uploaded files are polled until ACTIVE
- Every generation call runs under a wall-clock ceiling
- SDK and network errors are translated into the pipeline's exceptions
"""
import asyncio
import io
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import httpx
from google import genai
from google.genai import errors, types

from exam_generator import config
from exam_generator.exceptions import (
    EmptyResponseError,
    GenerationError,
    TransportError,
    UploadError,
)
from exam_generator.models.run_models import FileHandle, GenerationResponse, TokenUsage

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def _state_name(file_obj) -> str:
    state = getattr(file_obj, "state", None)
    if state is None:
        return "ACTIVE"
    return str(getattr(state, "name", state)).upper()


def _token_usage(response) -> TokenUsage:
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        return TokenUsage()
    prompt = usage.prompt_token_count or 0
    completion = usage.candidates_token_count or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=usage.total_token_count or prompt + completion,
        cached_tokens=getattr(usage, "cached_content_token_count", None) or 0,
    )


def translate_api_error(error: errors.APIError, action: str) -> GenerationError:
    """Map an SDK error onto TransportError when it is transient, else a terminal error."""
    code = getattr(error, "code", None)
    if code is None or code in RETRYABLE_STATUS_CODES or code >= 500:
        return TransportError(f"Gemini {action} failed with status {code}: {error}", error)
    if action == "upload":
        return UploadError(f"Gemini rejected upload with status {code}: {error}")
    return GenerationError(
        f"Gemini rejected {action} with status {code}: {error}",
        code="GENERATION_REJECTED",
        details={"status": code})


class GeminiGenerationClient:
    """Generation boundary backed by the google-genai async client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = config.GENERATION_TEMPERATURE,
        timeout: float = config.GENERATION_TIMEOUT_SECONDS,
        client: Optional[genai.Client] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Gemini adapter.

        Args:
            api_key: Google AI API key. If not provided, uses GEMINI_API_KEY environment variable.
            model_name: Gemini model to use. Defaults to config.MODEL_NAME.
            system_instruction: System instruction for every call. Defaults to config.SYSTEM_INSTRUCTION.
            temperature: Sampling temperature.
            timeout: Wall-clock ceiling for one generation call, in seconds.
            client: Pre-built genai client (mainly for tests).
            http_client: httpx client used to download URL materials.
        """
        self.client = client or genai.Client(api_key=api_key or os.environ.get("GEMINI_API_KEY"))
        self.model_name = model_name or config.MODEL_NAME
        self.system_instruction = system_instruction or config.SYSTEM_INSTRUCTION
        self.temperature = temperature
        self.timeout = timeout
        self.http_client = http_client
        self.poll_interval = config.FILE_POLL_INTERVAL_SECONDS
        self.max_polls = config.FILE_POLL_MAX_ATTEMPTS

    async def _download(self, url: str) -> bytes:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=config.DOWNLOAD_TIMEOUT_SECONDS) as http:
                    response = await http.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UploadError(f"Could not download {url}: {e}") from e
        return response.content

    async def _wait_until_active(self, uploaded):
        for _ in range(self.max_polls):
            state = _state_name(uploaded)
            if state == "ACTIVE":
                return uploaded
            if state == "FAILED":
                raise UploadError(f"Gemini failed to process file {uploaded.name}")
            await asyncio.sleep(self.poll_interval)
            uploaded = await self.client.aio.files.get(name=uploaded.name)
        raise UploadError(
            f"File {uploaded.name} was not ready after {self.max_polls} checks")

    async def upload(self, file_ref: str) -> FileHandle:
        """
        Upload one reference document and wait until it can be used.

        Args:
            file_ref: Local path or http(s) URL of a PDF.

        Returns:
            FileHandle for the processed file.

        Raises:
            UploadError: If the document cannot be read, uploaded or processed.
            TransportError: On transient service failures.
        """
        display_name = Path(file_ref.split("?")[0]).name or "material.pdf"
        upload_config = types.UploadFileConfig(mime_type="application/pdf", display_name=display_name)
        try:
            if file_ref.startswith(("http://", "https://")):
                content = await self._download(file_ref)
                source = io.BytesIO(content)
            else:
                path = Path(file_ref)
                if not path.is_file():
                    raise UploadError(f"Material file not found: {file_ref}")
                source = str(path)

            logger.info("Uploading %s to Gemini", display_name)
            uploaded = await self.client.aio.files.upload(file=source, config=upload_config)
            uploaded = await self._wait_until_active(uploaded)
        except errors.APIError as e:
            raise translate_api_error(e, "upload") from e
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(f"Upload of {display_name} failed: {e}", e) from e

        logger.info("Uploaded %s as %s", display_name, uploaded.uri)
        return FileHandle(
            name=uploaded.name,
            uri=uploaded.uri,
            mime_type=uploaded.mime_type or "application/pdf",
            display_name=display_name,
        )

    async def generate(self, prompt: str, file_handles: Sequence[FileHandle]) -> GenerationResponse:
        """
        Run one generation call with the given files attached.

        Raises:
            TransportError: On network, rate-limit, server or timeout failures.
            EmptyResponseError: If the model returns no text.
        """
        contents = [
            types.Part.from_uri(file_uri=handle.uri, mime_type=handle.mime_type)
            for handle in file_handles
        ]
        contents.append(prompt)
        generation_config = types.GenerateContentConfig(
            system_instruction=self.system_instruction,
            temperature=self.temperature,
            response_mime_type="application/json",
        )

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model_name,
                    contents=contents,
                    config=generation_config,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Generation timed out after {self.timeout:.0f}s", e) from e
        except errors.APIError as e:
            raise translate_api_error(e, "generation") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error during generation: {e}", e) from e

        text = response.text
        if not text or not text.strip():
            raise EmptyResponseError("Gemini returned an empty response")

        return GenerationResponse(
            raw_text=text,
            token_usage=_token_usage(response),
            model=self.model_name,
        )
