from __future__ import annotations

import json
import time
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError
from urllib.request import Request, urlopen

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_MAX_BODY_CHARS = 2000


@dataclass
class LLMResponse:
    content: str


class CompletionError(Exception):
    kind = "upstream_error"


class UnconfiguredError(CompletionError):
    kind = "unconfigured"


class UnauthorizedError(CompletionError):
    kind = "unauthorized"


class RateLimitedError(CompletionError):
    kind = "rate_limited"


class UpstreamError(CompletionError):
    kind = "upstream_error"

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class LLMProvider:
    model: str = ""

    def ensure_configured(self) -> None:
        return

    def complete(
        self, system: str, user: str, *, json_mode: bool = False
    ) -> LLMResponse:  # pragma: no cover - interface
        raise NotImplementedError


class ChatCompletionProvider(LLMProvider):
    """OpenAI-compatible ``/v1/chat/completions`` client.

    Retries 429, 5xx and connection failures with exponential backoff up to
    ``max_retries`` times. A missing credential is reported before any request
    is built.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.openai.com",
        temperature: Optional[float] = None,
        timeout_s: float = 60.0,
        max_retries: int = 1,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise UnconfiguredError("LLM_API_KEY is not configured")

    def complete(self, system: str, user: str, *, json_mode: bool = False) -> LLMResponse:
        self.ensure_configured()
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": build_messages(system, user),
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            request = Request(
                f"{self.base_url}/v1/chat/completions",
                data=json.dumps(payload).encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                method="POST",
            )
            try:
                with urlopen(request, timeout=self.timeout_s) as response:
                    body = response.read().decode("utf-8", errors="replace")
            except HTTPError as exc:
                detail = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
                if exc.code in _RETRYABLE_STATUS and attempt < attempts - 1:
                    time.sleep(_backoff_s(attempt))
                    continue
                raise _error_for_status(exc.code, detail) from exc
            except (OSError, HTTPException) as exc:
                # URLError, timeouts, and resets or truncation while reading the body.
                if attempt < attempts - 1:
                    time.sleep(_backoff_s(attempt))
                    continue
                raise UpstreamError(f"LLM connection error: {exc}") from exc
            text = _extract_message_text(body)
            if not text:
                raise UpstreamError("LLM returned empty output", body=body[:_MAX_BODY_CHARS])
            return LLMResponse(content=text)
        raise UpstreamError("LLM request failed after retries")


def build_messages(system: str, user: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def resolve_provider(
    *,
    api_key: Optional[str],
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    temperature: Optional[float] = None,
    timeout_s: Optional[float] = None,
    max_retries: Optional[int] = None,
) -> LLMProvider:
    return ChatCompletionProvider(
        api_key=api_key or None,
        model=model or "gpt-4o-mini",
        base_url=base_url or "https://api.openai.com",
        temperature=temperature,
        timeout_s=timeout_s or 60.0,
        max_retries=max(0, max_retries if max_retries is not None else 1),
    )


def _backoff_s(attempt: int) -> float:
    return float(min(2**attempt, 8))


def _error_for_status(status: int, detail: str) -> CompletionError:
    body = (detail or "")[:_MAX_BODY_CHARS]
    if status in {401, 403}:
        return UnauthorizedError(f"LLM credential rejected ({status})")
    if status == 429:
        return RateLimitedError("LLM rate limit exceeded")
    return UpstreamError(f"LLM API error ({status})", status=status, body=body)


def _extract_message_text(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return ""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, list):
        # Some gateways return content parts instead of a single string.
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    if not isinstance(content, str):
        return ""
    return content.strip()
