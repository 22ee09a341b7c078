from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage


ROLE_TYPES = {
    "user": HumanMessage,
    "human": HumanMessage,
    "assistant": AIMessage,
    "ai": AIMessage,
    "bot": AIMessage,
    "system": SystemMessage,
}


def _text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        # Multi-part payloads keep only their text parts
        parts = [part.get("text") if isinstance(part, Mapping) else part for part in content]
        return "\n".join(str(part) for part in parts if isinstance(part, str) and part)
    return str(content)


def to_lc_messages(history: Iterable[Any], limit: int = 5) -> List[BaseMessage]:
    """Turn persisted chat turns into LangChain messages for the assistant prompt.

    Turns that are not mappings or carry no text are skipped. ``limit`` keeps
    the most recent usable turns; ``0`` keeps them all.
    """
    messages: List[BaseMessage] = []
    for item in history or []:
        if not isinstance(item, Mapping):
            continue
        content = _text(item.get("content")).strip()
        if not content:
            continue
        role = str(item.get("role") or "").lower()
        # Unknown roles are treated as user input
        messages.append(ROLE_TYPES.get(role, HumanMessage)(content=content))
    return messages[-limit:] if limit else messages
