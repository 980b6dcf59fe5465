"""Streaming client for the GitHub Copilot chat completion API."""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from copilot_chat.config import settings
from copilot_chat.core.error_handlers import (
    AuthenticationError,
    ProviderError,
    TransportError,
)
from copilot_chat.models.chat import Message

logger = logging.getLogger(__name__)

# Copilot rejects unknown agents with a 403
USER_AGENT = "curl/8.7.1"
EDITOR_VERSION = "Neovim/0.11.1"
EDITOR_PLUGIN_VERSION = "copilot-chat"
INTEGRATION_ID = "vscode-chat"

# Refresh the session token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60


class CopilotAuth:
    """Holds the GitHub OAuth token used to obtain Copilot session tokens."""

    def __init__(
        self, oauth_token: Optional[str] = None, apps_file: Optional[Path] = None
    ):
        self._oauth_token = oauth_token or settings.copilot_oauth_token
        self.apps_file = Path(apps_file or settings.copilot_apps_file)

    def get_token(self) -> str:
        """
        Return the OAuth token, reading the editor credentials file if needed.

        Raises:
            AuthenticationError: If no token can be found
        """
        if self._oauth_token:
            return self._oauth_token

        logger.debug("Token not found, looking for it in %s", self.apps_file)
        try:
            apps = json.loads(self.apps_file.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise AuthenticationError(
                f"credentials file {self.apps_file} not found"
            ) from e
        except (OSError, ValueError) as e:
            raise AuthenticationError(f"cannot read {self.apps_file}: {e}") from e

        if isinstance(apps, dict):
            for entry in apps.values():
                if isinstance(entry, dict) and entry.get("oauth_token"):
                    self._oauth_token = entry["oauth_token"]
                    return self._oauth_token

        raise AuthenticationError(f"no oauth_token entry in {self.apps_file}")


def _error_message(body: bytes, status_code: int) -> str:
    """Extract the service's error message from a response body."""
    try:
        data = json.loads(body)
    except ValueError:
        text = body.decode("utf-8", errors="replace").strip()
        return text or f"HTTP {status_code}"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    return f"HTTP {status_code}: {data}"


class CopilotClient:
    """Async client for the Copilot chat completion API."""

    def __init__(
        self,
        auth: CopilotAuth = None,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        max_retries: int = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.auth = auth or CopilotAuth()
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self.max_retries = settings.llm_max_retries if max_retries is None else max_retries

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

        self._session_token: Optional[str] = None
        self._session_expires_at = 0.0

        logger.info(f"Initialized Copilot client for model: {self.model}")

    async def _get_headers(self) -> Dict[str, str]:
        """Headers for API calls, exchanging the OAuth token when needed."""
        if (
            self._session_token is None
            or time.time() >= self._session_expires_at - TOKEN_EXPIRY_MARGIN
        ):
            await self._refresh_session_token()

        return {
            "Authorization": f"Bearer {self._session_token}",
            "Copilot-Integration-Id": INTEGRATION_ID,
            "Editor-Version": EDITOR_VERSION,
            "Editor-Plugin-Version": EDITOR_PLUGIN_VERSION,
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _refresh_session_token(self) -> None:
        oauth_token = self.auth.get_token()
        logger.debug("Retrieving session token from %s", settings.copilot_token_url)

        try:
            response = await self.client.get(
                settings.copilot_token_url,
                headers={"Authorization": f"token {oauth_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"token request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"token exchange rejected with status {response.status_code}"
            )
        if response.status_code >= 400:
            raise ProviderError(
                _error_message(response.content, response.status_code),
                status_code=response.status_code,
            )

        data = response.json()
        self._session_token = data["token"]
        self._session_expires_at = float(data.get("expires_at") or time.time() + 600)

    async def request(
        self, messages: List[Message], model: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """
        Stream a chat completion.

        Opening the stream is retried on rate limits, server errors and
        connection failures; once bytes were yielded nothing is retried.

        Args:
            messages: Full ordered message list
            model: Model name; client default when None

        Yields:
            Raw response body chunks

        Raises:
            ProviderError: If the service rejects the request
            TransportError: If the connection fails or breaks mid-stream
        """
        model = model or self.model
        payload = {
            "model": model,
            "messages": [message.to_request() for message in messages],
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
            "stream": True,
        }

        if settings.log_sensitive_data:
            logger.debug("LLM request payload: %s", json.dumps(payload, indent=2))

        response = await self._open_stream(f"{self.base_url}/chat/completions", payload)
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"stream interrupted: {e}") from e
        finally:
            await response.aclose()

    async def _open_stream(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        for attempt in range(self.max_retries + 1):
            headers = await self._get_headers()
            logger.debug("LLM request attempt %d/%d", attempt + 1, self.max_retries + 1)

            try:
                response = await self.client.send(
                    self.client.build_request("POST", url, json=payload, headers=headers),
                    stream=True,
                )
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < self.max_retries:
                    wait_time = 2**attempt
                    logger.warning(
                        "Connection error, retrying after %ds (attempt %d/%d): %s",
                        wait_time,
                        attempt + 1,
                        self.max_retries + 1,
                        str(e),
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise TransportError(f"connection failed after all retries: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(str(e)) from e

            status_code = response.status_code
            if status_code == 429 or status_code >= 500:
                await response.aclose()
                if attempt < self.max_retries:
                    wait_time = self._get_retry_after(response, default=2**attempt)
                    logger.warning(
                        "Status %d, retrying after %.1fs (attempt %d/%d)",
                        status_code,
                        wait_time,
                        attempt + 1,
                        self.max_retries + 1,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise ProviderError(
                    f"Server error {status_code} after all retries",
                    status_code=status_code,
                )

            if status_code >= 400:
                body = await response.aread()
                await response.aclose()
                logger.error("LLM API client error: status=%d", status_code)
                raise ProviderError(
                    _error_message(body, status_code), status_code=status_code
                )

            return response

        raise TransportError("All retry attempts exhausted")

    def _get_retry_after(self, response: httpx.Response, default: float) -> float:
        """Extract retry-after time from response headers."""
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return float(default)

    async def list_models(self) -> List[str]:
        """Return the identifiers of the models available to the account."""
        headers = await self._get_headers()
        try:
            response = await self.client.get(f"{self.base_url}/models", headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(str(e)) from e

        if response.status_code >= 400:
            raise ProviderError(
                _error_message(response.content, response.status_code),
                status_code=response.status_code,
            )

        return [model["id"] for model in response.json().get("data", [])]

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


def create_llm_client() -> CopilotClient:
    """Create a Copilot client using settings."""
    return CopilotClient(
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
