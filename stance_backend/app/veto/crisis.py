from __future__ import annotations

CRISIS_RESOURCES = (
    "If you're in crisis or thinking about harming yourself, you don't have to go through this alone:\n"
    "- 988 Suicide & Crisis Lifeline: call or text 988 (US)\n"
    "- Crisis Text Line: text HOME to 741741\n"
    "- International Association for Suicide Prevention: https://www.iasp.info/resources/Crisis_Centres/\n"
    "- If you are in immediate danger, call 911 or your local emergency number."
)

CRISIS_SEPARATOR = "\n\n---\n\n"


def prepend_crisis_resources(text: str | None) -> str:
    body = (text or "").strip()
    if body.startswith(CRISIS_RESOURCES):
        return body
    if not body:
        return CRISIS_RESOURCES
    return f"{CRISIS_RESOURCES}{CRISIS_SEPARATOR}{body}"


def has_crisis_resources(text: str | None) -> bool:
    return (text or "").startswith(CRISIS_RESOURCES)


def strip_crisis_resources(text: str | None) -> str:
    """Body without the crisis block; the block itself is static and exempt from leak checks."""
    body = text or ""
    if not body.startswith(CRISIS_RESOURCES):
        return body
    rest = body[len(CRISIS_RESOURCES):]
    if rest.startswith(CRISIS_SEPARATOR):
        rest = rest[len(CRISIS_SEPARATOR):]
    return rest


__all__ = ["CRISIS_RESOURCES", "prepend_crisis_resources", "has_crisis_resources", "strip_crisis_resources"]
