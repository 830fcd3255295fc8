import asyncio
from typing import Dict, Any, Optional, List

import httpx
from httpx import TimeoutException, HTTPStatusError

from factgraph.core.config import LLMSettings
from factgraph.core.exceptions import APIClientError, APITimeoutError
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Base client for LLM API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
            http_client: Shared httpx client; one is created when omitted
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = LOGGER

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def call_api(
        self,
        endpoint: str = "",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST to the API with retry logic.

        Args:
            endpoint: API endpoint (appended to base_url)
            payload: JSON payload
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        if headers:
            default_headers.update(headers)

        self.logger.debug(
            f"Calling LLM API: {url}",
            extra={"timeout": self.timeout}
        )

        for attempt in range(self.max_retries):
            try:
                response = await self.http_client.post(url, headers=default_headers, json=payload)
                response.raise_for_status()
                return response.json()

            except HTTPStatusError as e:
                await self._handle_http_error(e, attempt, url)

            except TimeoutException as e:
                await self._handle_timeout_error(e, attempt, url)

            except httpx.HTTPError as e:
                await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Handle HTTP status errors."""
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body[:500]}") from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries") from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts") from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        """Handle transport errors."""
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}") from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)


class ChatCompletionsClient(BaseLLMClient):
    """Client for OpenAI-compatible chat completion endpoints (OpenRouter, OpenAI, Ollama)."""

    def __init__(self, settings: LLMSettings, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            api_key=settings.api_key,
            base_url=settings.api_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            http_client=http_client,
        )
        self.model = settings.model

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.0,
        json_mode: bool = True,
    ) -> str:
        """Return the text content of the first choice."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        data = await self.call_api(payload=payload)

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise APIClientError("Unexpected chat completion response shape", original_error=e) from e
