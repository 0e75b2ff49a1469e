from http import HTTPStatus
from typing import Any, Dict, Optional

import httpx

from pipeline.core.config import ERROR_BODY_MAX_CHARS, LLM_REQUEST_TIMEOUT_SECONDS
from pipeline.core.exceptions import ExternalServiceError


def _raise_llm_error(
    error_type: str,
    details: Dict[str, Any],
    exc: Optional[Exception] = None,
) -> None:
    raise ExternalServiceError(
        service_name="LLM",
        error_type=error_type,
        details=details,
    ) from exc


def _extract_content(body: Any) -> str:
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str):
        _raise_llm_error("error", {"reason": "Malformed completion payload"})
    return content.strip()


class LLMClient:
    """Async client for an OpenAI-compatible chat completions endpoint.

    The model is chosen per call so one client serves the whole fallback chain.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = LLM_REQUEST_TIMEOUT_SECONDS,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def start(self) -> None:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify,
                headers=headers,
                transport=self._transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.0,
        max_tokens: int = 500,
    ) -> str:
        """
        Request one chat completion and return the assistant message text.

        Raises:
            ExternalServiceError: On any network, HTTP or payload failure.
        """
        if self._client is None:
            await self.start()

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/chat/completions", json=payload
            )
            response.raise_for_status()
            body = response.json()

        except httpx.HTTPStatusError as e:
            error_type = (
                "rate_limit"
                if e.response.status_code == HTTPStatus.TOO_MANY_REQUESTS
                else "error"
            )
            _raise_llm_error(
                error_type,
                {
                    "model": model,
                    "http_code": e.response.status_code,
                    "body": e.response.text[:ERROR_BODY_MAX_CHARS],
                },
                e,
            )

        except httpx.TimeoutException as e:
            _raise_llm_error("timeout", {"model": model, "reason": str(e)}, e)

        except httpx.TransportError as e:
            _raise_llm_error("unavailable", {"model": model, "reason": str(e)}, e)

        except ValueError as e:
            _raise_llm_error(
                "error", {"model": model, "reason": f"Invalid JSON body: {e}"}, e
            )

        return _extract_content(body)
