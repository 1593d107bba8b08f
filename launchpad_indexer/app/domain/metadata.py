from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_NAME_LENGTH = 100
MAX_SYMBOL_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 1000

_SCRIPT_BLOCK_RE = re.compile(r"<\s*(script|style)\b.*?>.*?<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_JS_SCHEME_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_SOCIAL_KEYS = ("twitter", "telegram", "website", "discord")


def sanitize_text(value: str) -> str:
    """
    Strip markup that could be replayed as stored XSS by a frontend.

    Off-chain metadata is attacker-controlled, so every free-text field goes
    through here before it is cached or written to a token row.
    """
    value = _SCRIPT_BLOCK_RE.sub("", value)
    value = _TAG_RE.sub("", value)
    value = value.replace("<", "").replace(">", "")
    value = _JS_SCHEME_RE.sub("", value)
    value = _EVENT_HANDLER_RE.sub("", value)
    return value.strip()


def _clean(value: Any, limit: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    cleaned = sanitize_text(value)[:limit]
    return cleaned or None


def _safe_url(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    v = value.strip()
    if not v.lower().startswith(("https://", "http://")):
        return None
    if any(c in v for c in "<>\"' "):
        return None
    return v


class TokenMetadata(BaseModel):
    """
    Off-chain token document (name/symbol/description/image/social links).

    Unknown keys are dropped; free-text fields are sanitized and truncated to
    the length limits on construction.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    symbol: str | None = None
    description: str | None = None
    image: str | None = None
    social: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str | None:
        return _clean(v, MAX_NAME_LENGTH)

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v: Any) -> str | None:
        return _clean(v, MAX_SYMBOL_LENGTH)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> str | None:
        return _clean(v, MAX_DESCRIPTION_LENGTH)

    @field_validator("image", mode="before")
    @classmethod
    def _image(cls, v: Any) -> str | None:
        if not isinstance(v, str) or not v.strip():
            return None
        v = v.strip()
        if _JS_SCHEME_RE.search(v) or any(c in v for c in "<>\"'"):
            return None
        return v

    @field_validator("social", mode="before")
    @classmethod
    def _social(cls, v: Any) -> dict[str, str]:
        if not isinstance(v, dict):
            return {}
        out: dict[str, str] = {}
        for key in _SOCIAL_KEYS:
            url = _safe_url(v.get(key))
            if url:
                out[key] = url
        return out

    @classmethod
    def from_document(cls, document: Any) -> "TokenMetadata | None":
        if not isinstance(document, dict):
            return None
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
