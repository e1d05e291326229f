"""
Vision providers: one frame in, a VisionResult out.

Both providers send the same instruction prompt and parse the same JSON
shape. Failures are raised as the errors in errors.py; cancellation of the
awaiting task propagates into the HTTP call and is re-raised untouched.
"""

import asyncio
import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai.types import GenerateContentConfig, HttpOptions, Part

from config import ApiKeyStore, PipelineConfig
from errors import ConfigError, HttpStatusError, ResponseShapeError, TransportError
from models import VisionResult

logger = logging.getLogger(__name__)

VISION_PROMPT = (
    "You are assisting a visually impaired user. Identify physical objects and visible "
    "text in the image. Estimate approximate distance in meters for each object. "
    "Respond ONLY with valid JSON in this exact format: "
    '{"objects":[{"name":"object name","estimated_distance_m":5.0}], "text":["text1","text2"]}. '
    "Do not include any other text or markdown formatting."
)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


class VisionClient(ABC):
    """Analyzes one encoded frame."""

    provider = "vision"

    def __init__(self, key_store: ApiKeyStore):
        self.key_store = key_store

    def _require_api_key(self) -> str:
        api_key = self.key_store.get_api_key()
        if not api_key:
            logger.error(f"❌ Missing {self.provider} API key")
            raise ConfigError(f"Missing {self.provider} API key")
        return api_key

    async def analyze(self, frame_bytes: bytes, mime_type: str = "image/jpeg") -> VisionResult:
        api_key = self._require_api_key()
        start = time.perf_counter()
        try:
            text = await self._request(api_key, frame_bytes, mime_type)
        except asyncio.CancelledError:
            logger.info(f"🛑 {self.provider} analysis cancelled")
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"⏱️ {self.provider} responded in {elapsed_ms:.0f}ms")
        logger.debug(f"{self.provider} assistant text: {text[:500]}")

        vision = VisionResult.from_model_text(text)
        logger.info(f"👁️ Vision objects={len(vision.objects)} textCount={len(vision.text)}")
        return vision

    @abstractmethod
    async def _request(self, api_key: str, frame_bytes: bytes, mime_type: str) -> str:
        """Return the model's raw answer text."""

    async def aclose(self):
        pass


class GeminiVisionClient(VisionClient):
    """Gemini via the google-genai SDK."""

    provider = "Gemini"

    def __init__(
        self,
        key_store: ApiKeyStore,
        model: str = "gemini-2.5-flash",
        timeout_s: float = 30.0
    ):
        super().__init__(key_store)
        self.model = model
        self.timeout_s = timeout_s
        self._client: Optional[genai.Client] = None
        self._client_key: Optional[str] = None

    async def _get_client(self, api_key: str) -> genai.Client:
        # Rebuild when the key changes at runtime
        if self._client is None or self._client_key != api_key:
            await self._close_client()
            self._client = genai.Client(
                api_key=api_key,
                http_options=HttpOptions(timeout=int(self.timeout_s * 1000))
            )
            self._client_key = api_key
        return self._client

    async def _close_client(self):
        client, self._client, self._client_key = self._client, None, None
        if client is not None:
            await client.aio.aclose()

    async def _request(self, api_key: str, frame_bytes: bytes, mime_type: str) -> str:
        client = await self._get_client(api_key)
        config = GenerateContentConfig(
            response_mime_type="application/json",
            temperature=0.1,
        )
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[Part.from_bytes(data=frame_bytes, mime_type=mime_type), VISION_PROMPT],
                config=config
            )
        except genai_errors.APIError as e:
            body = str(e.details or e.message or "")
            logger.error(f"❌ Gemini API failed: HTTP {e.code} body={body[:500]}")
            raise HttpStatusError(self.provider, e.code, body)
        except (httpx.TransportError, OSError) as e:
            logger.error(f"❌ Gemini transport failure: {e}")
            raise TransportError(f"Gemini request failed: {e}")

        text = response.text
        if not text:
            raise ResponseShapeError("No assistant message in response")
        return text

    async def aclose(self):
        await self._close_client()


class OpenAIVisionClient(VisionClient):
    """OpenAI Chat Completions over plain httpx."""

    provider = "OpenAI"

    def __init__(
        self,
        key_store: ApiKeyStore,
        model: str = "gpt-4o-mini",
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        url: str = OPENAI_CHAT_URL
    ):
        super().__init__(key_store)
        self.model = model
        self.url = url
        self.timeout = timeout or httpx.Timeout(30.0, connect=20.0)
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http

    def build_payload(self, frame_bytes: bytes, mime_type: str) -> dict:
        b64 = base64.b64encode(frame_bytes).decode("ascii")
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{b64}"}},
                    ],
                }
            ],
            "max_tokens": 500,
        }

    async def _request(self, api_key: str, frame_bytes: bytes, mime_type: str) -> str:
        headers = {"Authorization": f"Bearer {api_key}"}
        try:
            resp = await self._get_http().post(
                self.url,
                json=self.build_payload(frame_bytes, mime_type),
                headers=headers
            )
        except httpx.TransportError as e:
            logger.error(f"❌ OpenAI transport failure: {e}")
            raise TransportError(f"OpenAI request failed: {e}")

        logger.debug(f"OpenAI HTTP {resp.status_code}")
        if not resp.is_success:
            logger.error(f"❌ OpenAI API failed: HTTP {resp.status_code} body={resp.text[:500]}")
            raise HttpStatusError(self.provider, resp.status_code, resp.text)

        try:
            parsed = resp.json()
        except ValueError:
            raise ResponseShapeError("Empty OpenAI response")
        try:
            content = parsed["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ResponseShapeError("No assistant message in response")
        if not isinstance(content, str) or not content.strip():
            raise ResponseShapeError("No assistant message in response")
        return content.strip()

    async def aclose(self):
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def build_vision_client(config: PipelineConfig, key_store: Optional[ApiKeyStore] = None) -> VisionClient:
    key_store = key_store or ApiKeyStore(config.default_api_key())
    if config.provider == "openai":
        timeout = httpx.Timeout(
            config.read_timeout_s,
            connect=config.connect_timeout_s,
            read=config.read_timeout_s,
            write=config.write_timeout_s,
        )
        return OpenAIVisionClient(key_store, model=config.openai_model, timeout=timeout)
    return GeminiVisionClient(key_store, model=config.gemini_model, timeout_s=config.read_timeout_s)
