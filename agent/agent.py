from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from agent.core.errors import (
    ConfigurationError,
    InvalidApiKeyError,
    PermissionDeniedError,
    QuotaExceededError,
    UpstreamError,
)
from agent.core.prompt import build_system_prompt
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

LLMFactory = Callable[[str, Settings], BaseChatModel]

# max_retries counts attempts in langchain-google-genai, so 1 means no retry
SINGLE_ATTEMPT = 1

MISSING_KEY_MESSAGE = (
    "Gemini API key is required. Please provide an API key in settings "
    "or set GEMINI_API_KEY environment variable."
)
INVALID_KEY_MESSAGE = "Invalid or missing API key. Please check your Gemini API key in settings."
QUOTA_MESSAGE = "API quota exceeded or billing issue. Please check your Gemini API account."
PERMISSION_MESSAGE = (
    "API permission denied. Please ensure your Gemini API key has the correct permissions."
)

# google.genai / google.api_core errors expose these on the exception itself
_STATUS_KINDS = {
    "UNAUTHENTICATED": (InvalidApiKeyError, INVALID_KEY_MESSAGE),
    "RESOURCE_EXHAUSTED": (QuotaExceededError, QUOTA_MESSAGE),
    "PERMISSION_DENIED": (PermissionDeniedError, PERMISSION_MESSAGE),
}
_CODE_KINDS = {
    401: _STATUS_KINDS["UNAUTHENTICATED"],
    429: _STATUS_KINDS["RESOURCE_EXHAUSTED"],
    403: _STATUS_KINDS["PERMISSION_DENIED"],
}
# Last resort, checked in order against the lowercased error text
_TEXT_PATTERNS = (
    (("api key",), _STATUS_KINDS["UNAUTHENTICATED"]),
    (("quota", "billing"), _STATUS_KINDS["RESOURCE_EXHAUSTED"]),
    (("permission",), _STATUS_KINDS["PERMISSION_DENIED"]),
)


def build_llm(api_key: str, settings: Settings) -> BaseChatModel:
    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
        max_retries=SINGLE_ATTEMPT,
    )


def resolve_api_key(api_key: Optional[str], settings: Settings) -> str:
    key = (api_key or "").strip() or (settings.gemini_api_key or "").strip()
    if not key:
        raise ConfigurationError(MISSING_KEY_MESSAGE)
    return key


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _structured_kind(exc: BaseException):
    for err in _exception_chain(exc):
        status = getattr(err, "status", None)
        if isinstance(status, str) and status.upper() in _STATUS_KINDS:
            return _STATUS_KINDS[status.upper()]
        code = getattr(err, "code", None)
        if isinstance(code, int) and code in _CODE_KINDS:
            return _CODE_KINDS[code]
    return None


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    """Map an exception raised by the model client onto the UpstreamError family.

    Structured status/code attributes anywhere in the exception chain take
    precedence; the message text is only consulted when none is present.
    """
    kind = _structured_kind(exc)
    if kind is None:
        text = str(exc).lower()
        for needles, candidate in _TEXT_PATTERNS:
            if any(n in text for n in needles):
                kind = candidate
                break
    if kind is None:
        return UpstreamError(f"AI service error: {exc}")
    error_cls, message = kind
    return error_cls(message)


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text") or "")
    return "".join(parts)


def generate_response(
    user_message: str,
    sales_prompt: str,
    api_key: Optional[str] = None,
    *,
    settings: Optional[Settings] = None,
    llm_factory: LLMFactory = build_llm,
) -> str:
    """Send one user turn to Gemini under the sales persona and return the reply.

    Each call is independent: no history is sent, nothing is cached and
    nothing is retried here.
    """
    settings = settings or get_settings()
    key = resolve_api_key(api_key, settings)

    llm = llm_factory(key, settings)
    messages = [
        SystemMessage(content=build_system_prompt(sales_prompt)),
        HumanMessage(content=user_message),
    ]
    logger.info(
        "Relaying message: model=%s message_len=%s prompt_len=%s",
        settings.gemini_model,
        len(user_message),
        len(sales_prompt),
    )
    try:
        result = llm.invoke(messages)
    except Exception as exc:
        logger.exception("Gemini API error: %s", exc)
        raise classify_upstream_error(exc) from exc

    text = _content_text(getattr(result, "content", "")).strip()
    if not text:
        raise UpstreamError("No response generated from Gemini API")

    logger.info("Model responded with %s chars", len(text))
    return text
