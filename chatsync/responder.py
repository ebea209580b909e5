"""
Automated responder.

GeminiClient talks to a generateContent endpoint and either returns the raw
JSON payload or raises ResponderTransportError. Responder turns one prompt
into exactly one reply string: the model's text, or a fixed fallback when the
call fails. There are no retries.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from chatsync.errors import MalformedResponse, ResponderTransportError
from chatsync.metrics import record_responder_outcome

logger = logging.getLogger(__name__)

MALFORMED_FALLBACK = "Sorry, I couldn't generate a response."
TRANSPORT_FALLBACK = "Sorry, there was an error connecting to the chat service."


class CompletionService(Protocol):
    async def complete(self, prompt: str, timeout: float) -> Any: ...


class GeminiClient:
    """HTTP client for the generateContent API."""

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = f"{api_url.rstrip('/')}/models/{model}:generateContent"
        self._api_key = api_key
        self._transport = transport

    async def complete(self, prompt: str, timeout: float) -> Any:
        """
        Send a single-turn prompt.

        Returns:
            The decoded JSON payload, not validated

        Raises:
            ResponderTransportError: network error, non-2xx status, undecodable
                body, or timeout
        """
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.url,
                        params={"key": self._api_key},
                        headers={"Content-Type": "application/json"},
                        json=payload,
                    ),
                    timeout=timeout,
                )
        except asyncio.TimeoutError as e:
            raise ResponderTransportError(f"responder timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ResponderTransportError(f"responder request failed: {e}") from e

        if response.status_code >= 400:
            raise ResponderTransportError(f"API call failed with status: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ResponderTransportError(f"responder returned invalid JSON: {e}") from e


def extract_text(payload: Any) -> str:
    """
    Pull candidates[0].content.parts[0].text out of a payload.

    Raises:
        MalformedResponse: any part of the path is missing or not a non-empty string
    """
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponse(f"unexpected response structure: {e!r}") from e
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponse("response text is empty or not a string")
    return text


class Responder:
    """One prompt in, one reply string out."""

    def __init__(self, service: CompletionService, timeout: float):
        self._service = service
        self.timeout = timeout

    async def reply(self, prompt: str) -> str:
        try:
            payload = await self._service.complete(prompt, self.timeout)
        except ResponderTransportError as e:
            logger.error(f"Failed to call responder: {e}")
            record_responder_outcome("transport_error")
            return TRANSPORT_FALLBACK

        try:
            text = extract_text(payload)
        except MalformedResponse as e:
            logger.error(f"Unexpected responder payload: {e}")
            record_responder_outcome("malformed")
            return MALFORMED_FALLBACK

        record_responder_outcome("ok")
        return text
