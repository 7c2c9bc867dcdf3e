from typing import Any, Dict, Iterable, List

PREAMBLE = (
    "You are a helpful and friendly assistant. "
    "Here is some background knowledge that may help:\n\n"
)

_ROLE_LABELS = {"system": "System", "user": "User", "assistant": "Assistant"}


def system_message(knowledge: str) -> str:
    return PREAMBLE + knowledge


def _render_message(msg: Dict[str, Any]) -> str:
    role = msg.get("role") or ""
    content = msg.get("content") or ""
    if role in _ROLE_LABELS:
        return f"{_ROLE_LABELS[role]}: {content}"
    if role == "function":
        return f"Function ({msg.get('name') or ''}): {content}"
    return f"{role}: {content}"


def format_conversation(messages: Iterable[Dict[str, Any]], knowledge: str) -> str:
    """Flatten a message list into the single text blob a flow expects."""
    history = "\n\n".join(_render_message(m) for m in messages)
    return f"{system_message(knowledge)}\n\n{history}"


def last_user_message(messages: Iterable[Dict[str, Any]]) -> str:
    last = ""
    for msg in messages:
        if msg.get("role") == "user":
            last = msg.get("content") or ""
    return last


def build_chat_messages(messages: Iterable[Dict[str, Any]], knowledge: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = [{"role": "system", "content": system_message(knowledge)}]
    for msg in messages:
        item: Dict[str, Any] = {"role": msg.get("role"), "content": msg.get("content") or ""}
        if msg.get("name"):
            item["name"] = msg["name"]
        out.append(item)
    return out
