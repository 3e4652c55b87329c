"""
LLM client for making API calls to providers
"""

import asyncio
import json
from typing import AsyncIterator, Dict, List, Any, Optional, Mapping, Tuple

import aiohttp

from ..models.data_classes import ProviderReply, ProviderSettings
from ..models.enums import Protocol
from ..utils.logging import setup_logging
from .errors import ProviderError
from .failure_classifier import FailureClassifier

logger = setup_logging()


def build_openai_payload(model: str, messages: List[Dict], options: Dict, stream: bool = False) -> Dict[str, Any]:
    """Request body for OpenAI-compatible chat completion endpoints"""
    payload = {
        "model": model,
        "messages": messages,
        "stream": stream
    }

    if options.get("max_tokens") is not None:
        payload["max_tokens"] = options["max_tokens"]
    if options.get("temperature") is not None:
        payload["temperature"] = max(0.0, min(2.0, options["temperature"]))
    if options.get("top_p") is not None:
        payload["top_p"] = max(0.0, min(1.0, options["top_p"]))
    if options.get("stop"):
        payload["stop"] = options["stop"]

    return payload


def build_gemini_payload(messages: List[Dict], options: Dict) -> Dict[str, Any]:
    """Request body for the Gemini generateContent endpoints"""
    contents = []
    system_parts = []
    for msg in messages:
        if msg["role"] == "system":
            system_parts.append({"text": msg["content"]})
        elif msg["role"] == "assistant":
            contents.append({"role": "model", "parts": [{"text": msg["content"]}]})
        else:
            contents.append({"role": "user", "parts": [{"text": msg["content"]}]})

    payload: Dict[str, Any] = {"contents": contents}
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}

    generation_config = {}
    if options.get("max_tokens") is not None:
        generation_config["maxOutputTokens"] = options["max_tokens"]
    if options.get("temperature") is not None:
        generation_config["temperature"] = options["temperature"]
    if options.get("top_p") is not None:
        generation_config["topP"] = options["top_p"]
    if options.get("stop"):
        generation_config["stopSequences"] = options["stop"]
    if generation_config:
        payload["generationConfig"] = generation_config

    return payload


def _parse_duration(value: Any) -> Optional[float]:
    """Parse protobuf-style durations such as "43s" or "1.5s" """
    if value is None:
        return None
    text = str(value).strip().lower()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return float(text)
    except ValueError:
        return None


def parse_error_response(provider: str, status: Optional[int], body_text: str,
                         headers: Optional[Mapping[str, str]] = None) -> ProviderError:
    """
    Turn an error response into a ProviderError

    Reads the structured error body both OpenAI-compatible providers and
    Gemini return ({"error": {"message", "status"/"code", "details"}}), and
    falls back to the raw text when the body is not JSON.
    """
    message = body_text.strip() or "empty error body"
    provider_status = None
    retry_after = None

    try:
        body = json.loads(body_text) if body_text else None
    except ValueError:
        body = None

    # Gemini occasionally wraps the error object in a list
    if isinstance(body, list) and body:
        body = body[0]

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = error.get("message") or message
        status_field = error.get("status") or error.get("code") or error.get("type")
        if isinstance(status_field, str):
            provider_status = status_field
        if status is None and isinstance(error.get("code"), int):
            # Errors embedded in a stream carry the HTTP code in the body
            status = error["code"]
        for detail in error.get("details") or []:
            if isinstance(detail, dict) and "retryDelay" in detail:
                retry_after = _parse_duration(detail["retryDelay"])

    if retry_after is None:
        retry_after = FailureClassifier.parse_retry_headers(headers)

    prefix = f"{provider} API error {status}" if status is not None else f"{provider} API error"
    return ProviderError(
        f"{prefix}: {message}",
        status_code=status,
        retry_after=retry_after,
        provider_status=provider_status,
        headers=dict(headers or {})
    )


def extract_openai_reply(result: Dict[str, Any]) -> ProviderReply:
    content = ""
    finish_reason = None
    choices = result.get("choices") or []
    if choices:
        choice = choices[0]
        finish_reason = choice.get("finish_reason")
        if "message" in choice:
            content = choice["message"].get("content") or ""

    if not content.strip():
        raise ProviderError(f"Provider returned empty content (finish_reason: {finish_reason})")

    usage = result.get("usage") or {}
    input_tokens = usage.get("prompt_tokens", 0)
    output_tokens = usage.get("completion_tokens", 0)
    return ProviderReply(
        content=content,
        usage={
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": usage.get("total_tokens", input_tokens + output_tokens)
        },
        finish_reason=finish_reason,
        raw_response=result
    )


def _gemini_text(result: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    candidates = result.get("candidates") or []
    if not candidates:
        return "", None

    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    return text, candidate.get("finishReason")


def extract_gemini_reply(result: Dict[str, Any]) -> ProviderReply:
    content, finish_reason = _gemini_text(result)

    if not content.strip():
        if finish_reason == "MAX_TOKENS":
            logger.warning("Gemini response truncated due to MAX_TOKENS, returning empty response")
        else:
            raise ProviderError(f"Gemini returned empty content (finish_reason: {finish_reason})")

    usage_data = result.get("usageMetadata") or {}
    input_tokens = usage_data.get("promptTokenCount", 0)
    output_tokens = usage_data.get("candidatesTokenCount", 0)
    return ProviderReply(
        content=content,
        usage={
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": usage_data.get("totalTokenCount", input_tokens + output_tokens)
        },
        finish_reason=finish_reason,
        raw_response=result
    )


class LLMClient:
    """Handles actual API calls to LLM providers"""

    def __init__(self, timeout_seconds: float = 300):
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def start(self):
        """Start the HTTP session"""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
        )

    async def stop(self):
        """Stop the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None

    def _request_target(self, settings: ProviderSettings, model: str, api_key: str,
                        stream: bool) -> Tuple[str, Dict[str, str]]:
        headers = {"Content-Type": "application/json"}

        if settings.protocol == Protocol.GEMINI:
            action = "streamGenerateContent?alt=sse" if stream else "generateContent"
            url = f"{settings.endpoint.rstrip('/')}/{model}:{action}"
            headers["x-goog-api-key"] = api_key
        elif settings.protocol == Protocol.OPENAI:
            url = settings.endpoint
            headers["Authorization"] = f"Bearer {api_key}"
        else:
            raise ValueError(f"Unsupported protocol: {settings.protocol}")

        headers.update(settings.headers)
        return url, headers

    def _build_payload(self, settings: ProviderSettings, model: str, messages: List[Dict],
                       options: Dict, stream: bool) -> Dict[str, Any]:
        if settings.protocol == Protocol.GEMINI:
            return build_gemini_payload(messages, options)
        return build_openai_payload(model, messages, options, stream=stream)

    async def complete(self, settings: ProviderSettings, model: str, api_key: str,
                       messages: List[Dict], options: Dict) -> ProviderReply:
        """Make one non-streaming call; raises ProviderError on any failure"""
        if self.session is None:
            raise RuntimeError("LLMClient.start() must be called before making requests")

        url, headers = self._request_target(settings, model, api_key, stream=False)
        payload = self._build_payload(settings, model, messages, options, stream=False)

        logger.info("Making provider API call",
                    provider=settings.name, model=model, payload_size=len(str(payload)))

        try:
            async with self.session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise parse_error_response(settings.name, response.status, error_text, response.headers)

                try:
                    result = await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(f"{settings.name} returned an invalid response body: {e}")
        except asyncio.TimeoutError:
            raise ProviderError(f"{settings.name} request timed out")
        except aiohttp.ClientError as e:
            raise ProviderError(f"{settings.name} connection error: {e}")

        if settings.protocol == Protocol.GEMINI:
            return extract_gemini_reply(result)
        return extract_openai_reply(result)

    async def stream(self, settings: ProviderSettings, model: str, api_key: str,
                     messages: List[Dict], options: Dict) -> AsyncIterator[str]:
        """Make one streaming call, yielding text deltas as they arrive"""
        if self.session is None:
            raise RuntimeError("LLMClient.start() must be called before making requests")

        url, headers = self._request_target(settings, model, api_key, stream=True)
        payload = self._build_payload(settings, model, messages, options, stream=True)

        logger.info("Opening provider stream", provider=settings.name, model=model)

        try:
            async with self.session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise parse_error_response(settings.name, response.status, error_text, response.headers)

                async for event in self._iter_sse(settings.name, response):
                    if settings.protocol == Protocol.GEMINI:
                        text, _ = _gemini_text(event)
                    else:
                        choices = event.get("choices") or []
                        text = ((choices[0].get("delta") or {}).get("content") or "") if choices else ""
                    if text:
                        yield text
        except asyncio.TimeoutError:
            raise ProviderError(f"{settings.name} stream timed out")
        except aiohttp.ClientError as e:
            raise ProviderError(f"{settings.name} stream connection error: {e}")

    async def _iter_sse(self, provider: str, response: aiohttp.ClientResponse) -> AsyncIterator[Dict[str, Any]]:
        """Decode server-sent events; errors embedded in the stream are raised"""
        lines = response.content.__aiter__()
        while True:
            try:
                raw_line = await lines.__anext__()
            except StopAsyncIteration:
                return
            except ValueError as e:
                # aiohttp refuses lines longer than its read buffer
                raise ProviderError(f"{provider} sent a malformed stream event: {e}")

            try:
                line = raw_line.decode("utf-8").strip()
            except UnicodeDecodeError:
                raise ProviderError(f"{provider} sent a malformed stream event")
            if not line.startswith("data:"):
                continue

            data = line[len("data:"):].strip()
            if data == "[DONE]":
                return

            try:
                event = json.loads(data)
            except ValueError:
                raise ProviderError(f"{provider} sent a malformed stream event")

            if isinstance(event, dict) and "error" in event:
                raise parse_error_response(provider, None, data)

            yield event
