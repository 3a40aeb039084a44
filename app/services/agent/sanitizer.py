"""Caller input sanitization."""
from typing import Any, Dict, Iterable, List, Mapping, Optional

_MARKUP_CHARS = str.maketrans("", "", "<>")


def sanitize_input(text: Optional[str]) -> str:
    """Remove angle brackets so caller text can't be read as markup."""
    if not text:
        return ""
    return text.translate(_MARKUP_CHARS)


def sanitize_messages(messages: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Return copies of chat-style messages with their content sanitized."""
    sanitized = []
    for message in messages:
        item = dict(message)
        if isinstance(item.get("content"), str):
            item["content"] = sanitize_input(item["content"])
        sanitized.append(item)
    return sanitized
