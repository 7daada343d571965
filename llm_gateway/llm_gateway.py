from __future__ import annotations  # Scoring-service request gateway module

import json
import logging
import os
from typing import Any, Dict, Optional, Sequence, Type, TypeVar

import httpx
from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ValidationError

from config.routes import LlmRoute


logger = logging.getLogger(__name__)  # Module logger setup

UNAVAILABLE_STATUS = frozenset({429, 500, 502, 503, 504, 529})


class LlmGatewayError(RuntimeError):  # Base gateway error
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LlmUnavailableError(LlmGatewayError):  # Overloaded, rate-limited, timed out or gateway-class status
    pass


class LlmInvalidOutputError(LlmGatewayError):  # Output never matched the schema
    pass


T = TypeVar("T", bound=BaseModel)


async def chat(
    messages: Sequence[Dict[str, str]] | Sequence[BaseMessage],
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[httpx.AsyncClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:  # Invoke configured route and validate output
    input_messages = _normalize_messages(messages)
    base_messages: list[Dict[str, str]] = []
    if cfg.enforce_json:
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        system_prompt = "Reply with a single JSON object matching this schema:\n" + schema_json
        base_messages.append({"role": "system", "content": system_prompt})
    base_messages.extend(input_messages)
    attempts = cfg.max_retries + 1
    last_error: Optional[Exception] = None
    last_error_text: Optional[str] = None
    preview = _preview(input_messages)
    if len(preview) > 120:
        preview = preview[:117] + "..."
    logger.info(
        "LLM request start route=%s model=%s attempts=%d preview=%s",
        cfg.name,
        cfg.model,
        attempts,
        preview,
    )
    owns_client = client is None
    http_client = client or httpx.AsyncClient(timeout=cfg.timeout_s)
    try:
        for attempt in range(attempts):
            attempt_messages = list(base_messages)
            if attempt > 0:
                attempt_messages.append(
                    {
                        "role": "system",
                        "content": _retry_hint(last_error_text, cfg.enforce_json),
                    }
                )
            payload: Dict[str, Any] = {"model": cfg.model, "messages": attempt_messages}
            if cfg.temperature is not None:
                payload["temperature"] = cfg.temperature
            if options:
                payload.update(options)
            if cfg.response_format:
                payload["response_format"] = {"type": cfg.response_format}
            data = await _post(http_client, cfg, payload)
            content = _extract_content(data)
            try:
                parsed = _validate(schema, content)
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning("LLM output validation failed route=%s attempt=%d: %s", cfg.name, attempt + 1, exc)
                last_error = exc
                last_error_text = str(exc)
                continue
            logger.info("LLM request done route=%s model=%s attempt=%d", cfg.name, cfg.model, attempt + 1)
            return parsed
    finally:
        if owns_client:
            await http_client.aclose()
    raise LlmInvalidOutputError("LLM output validation failed") from last_error


async def _post(client: httpx.AsyncClient, cfg: LlmRoute, payload: Dict[str, Any]) -> Any:  # Dispatch HTTP request and classify failures
    headers = {"Content-Type": "application/json"}
    if cfg.api_key_env:
        api_key = os.getenv(cfg.api_key_env)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
    headers.update(cfg.extra_headers)
    url = f"{cfg.base_url}{cfg.endpoint}"
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=cfg.timeout_s)
    except httpx.TimeoutException as exc:
        logger.error("LLM timeout route=%s: %s", cfg.name, exc)
        raise LlmUnavailableError("LLM request timed out") from exc
    except httpx.TransportError as exc:
        logger.error("LLM transport failure route=%s: %s", cfg.name, exc)
        raise LlmUnavailableError("LLM transport failed") from exc
    if response.status_code in UNAVAILABLE_STATUS:
        logger.error("LLM unavailable route=%s status=%s", cfg.name, response.status_code)
        raise LlmUnavailableError(
            f"LLM returned status {response.status_code}", status_code=response.status_code
        )
    if response.status_code >= 400:
        logger.error("LLM error route=%s status=%s", cfg.name, response.status_code)
        raise LlmGatewayError(f"LLM returned status {response.status_code}", status_code=response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        logger.error("Invalid JSON payload from LLM: %s", exc)
        raise LlmInvalidOutputError("LLM payload was not JSON") from exc


def _normalize_messages(messages: Sequence[Any]) -> list[Dict[str, str]]:  # Ensure message payload shape
    normalized: list[Dict[str, str]] = []
    for item in messages:
        if isinstance(item, BaseMessage):
            normalized.append(_message_dict(item))
            continue
        if not isinstance(item, dict):
            raise TypeError("Each chat message must be a dict with role/content")
        role = str(item.get("role", "")).strip()
        content = str(item.get("content", ""))
        if not role:
            raise ValueError("Chat message missing role")
        normalized.append({"role": role, "content": content})
    return normalized


def _preview(messages: Sequence[Dict[str, str]]) -> str:  # Build preview string for logging
    for message in messages:
        text = message.get("content", "").strip()
        if text:
            return text.splitlines()[0]
    return ""


def _extract_content(data: Any) -> str:  # Extract message content from LLM response
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message = choices[0].get("message") if isinstance(choices[0], dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, str):
                return content
        if isinstance(data.get("content"), str):
            return data["content"]
    raise LlmInvalidOutputError("LLM response missing content")


def _validate(schema: Type[T], content: str) -> T:  # Parse JSON content with schema
    cleaned = _strip_code_fences(content)
    return schema.model_validate_json(cleaned)


def _strip_code_fences(content: str) -> str:  # Remove common markdown fences from LLM output
    text = content.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines:
            lines = lines[1:]
            while lines and lines[0].strip() == "":
                lines = lines[1:]
            while lines and lines[-1].strip() == "":
                lines = lines[:-1]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    return text


def _retry_hint(error_text: Optional[str], enforce_json: bool) -> str:  # Compose re-prompt instructions including last error
    base = "The previous reply failed validation."
    if error_text:
        truncated = error_text.splitlines()[0].strip()
        if len(truncated) > 200:
            truncated = truncated[:197] + "..."
        base += f" Reason: {truncated}."
    if enforce_json:
        return base + " Return a single JSON object that matches the schema."
    return base + " Follow the requested format precisely."


def _message_dict(message: BaseMessage) -> Dict[str, str]:  # Map LangChain BaseMessage to role/content dict
    role = message.type
    if role == "human":
        role = "user"
    elif role == "ai":
        role = "assistant"
    content = message.content
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"role": role, "content": content}
