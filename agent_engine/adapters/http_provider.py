"""
Base class for providers spoken to over plain HTTP with httpx.
"""
import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from agent_engine.exceptions import ProviderError, ProviderUnavailable
from agent_engine.interfaces.providers.llm import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class HttpLLMProvider(LLMProvider):
    """Shared client handling and error mapping for httpx-based providers."""

    provider_name = ""
    display_name = ""
    default_base_url = ""
    default_model = ""
    models: List[str] = []

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ProviderUnavailable(f"{self.display_name} API key is not configured")

        self.api_key = api_key
        self.text_model = model or self.default_model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self._client = http_client

    @property
    def name(self) -> str:
        return self.provider_name

    def list_models(self) -> List[str]:
        return list(self.models)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._default_headers(),
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _status_error(self, status_code: int, body: str) -> Exception:
        message = f"{self.display_name} API error {status_code}: {body[:200]}"
        if status_code in (401, 403):
            return ProviderUnavailable(message)
        return ProviderError(message)

    def _request_error(self, error: httpx.RequestError) -> Exception:
        if isinstance(error, (httpx.ConnectError, httpx.TimeoutException)):
            return ProviderUnavailable(
                f"Cannot reach {self.display_name} at {self.base_url}: {error}", error
            )
        return ProviderError(f"{self.display_name} request failed: {error}", error)

    async def _post_json(
        self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        client = self._get_client()
        try:
            logger.debug(f"{self.display_name} request: {path}")
            response = await client.post(path, json=payload, params=params)
        except httpx.RequestError as e:
            logger.error(f"{self.display_name} request error: {e}")
            raise self._request_error(e) from e

        if response.status_code != 200:
            logger.error(
                f"{self.display_name} HTTP error: {response.status_code} - {response.text}"
            )
            raise self._status_error(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.display_name} returned invalid JSON", e) from e

    async def _stream_sse(
        self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield the JSON payload of each server-sent ``data:`` line."""
        client = self._get_client()
        try:
            async with client.stream("POST", path, json=payload, params=params) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(
                        f"{self.display_name} HTTP error: {response.status_code} - {body}"
                    )
                    raise self._status_error(response.status_code, body)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        yield json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse {self.display_name} stream line: {line}")
        except httpx.RequestError as e:
            logger.error(f"{self.display_name} stream request error: {e}")
            raise self._request_error(e) from e
