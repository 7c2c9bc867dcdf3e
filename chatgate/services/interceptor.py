"""
Heuristic function calling for providers that have no native tool-calling support.

Intent is inferred by keyword matching on the lower-cased response and user text,
this is pattern matching, not semantic understanding. The classifier is pluggable so
a structured one (real tool calls) can replace it without touching the stream normalizer.
"""
import logging
from enum import Enum
from typing import Optional, Protocol, Tuple

from chatgate.schemas.chat import RequestContext
from chatgate.services.capabilities import CapabilityRegistry

logger = logging.getLogger(__name__)

FUNCTION_CALL_KEYWORDS: Tuple[str, ...] = (
    "send photo",
    "send picture",
    "send image",
    "photo",
    "picture",
    "image",
    "order sandwich",
    "sandwich",
    "food",
    "order",
)
PHOTO_KEYWORDS: Tuple[str, ...] = ("photo", "picture", "image")
SANDWICH_KEYWORD = "sandwich"
# checked in order, first hit wins
FILLINGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("turkey", ("turkey",)),
    ("beef", ("beef",)),
    ("chicken", ("chicken",)),
    ("vegetarian", ("vegetarian", "veggie")),
)
DEFAULT_FILLING = "ham"

SEND_PHOTO = "send_photo"
ORDER_SANDWICH = "order_sandwich"


class Intent(str, Enum):
    NONE = "none"
    SEND_PHOTO = "send_photo"
    ORDER_SANDWICH = "order_sandwich"
    OTHER_FOOD = "other_food"  # matched the food family but nothing we can dispatch


def combined_text(response_text: str, user_text: str) -> str:
    return f"{response_text or ''} {user_text or ''}".lower()


def extract_filling(text: str) -> str:
    lowered = text.lower()
    for filling, keywords in FILLINGS:
        if any(k in lowered for k in keywords):
            return filling
    return DEFAULT_FILLING


class IntentClassifier(Protocol):
    def detect_intent(self, response_text: str, user_text: str) -> bool: ...

    def classify(self, response_text: str, user_text: str) -> Intent: ...


class KeywordIntentClassifier:
    def detect_intent(self, response_text: str, user_text: str) -> bool:
        text = combined_text(response_text, user_text)
        return any(k in text for k in FUNCTION_CALL_KEYWORDS)

    def classify(self, response_text: str, user_text: str) -> Intent:
        text = combined_text(response_text, user_text)
        if any(k in text for k in PHOTO_KEYWORDS):
            return Intent.SEND_PHOTO
        if SANDWICH_KEYWORD in text:
            return Intent.ORDER_SANDWICH
        if any(k in text for k in FUNCTION_CALL_KEYWORDS):
            return Intent.OTHER_FOOD
        return Intent.NONE


class FunctionCallInterceptor:
    def __init__(self, capabilities: CapabilityRegistry, classifier: Optional[IntentClassifier] = None) -> None:
        self.capabilities = capabilities
        self.classifier: IntentClassifier = classifier or KeywordIntentClassifier()

    def detect_intent(self, response_text: str, user_text: str) -> bool:
        return self.classifier.detect_intent(response_text, user_text)

    async def attempt(self, response_text: str, user_text: str, ctx: RequestContext) -> Optional[str]:
        """Run the matching capability and return its text, None when nothing ran.

        Capability failures are logged and reported as no result, a failed side
        effect never aborts the conversation.
        """
        intent = self.classifier.classify(response_text, user_text)
        try:
            if intent is Intent.SEND_PHOTO and self.capabilities.has(SEND_PHOTO):
                return await self.capabilities.invoke(SEND_PHOTO, ctx.app_id, ctx.user_id, ctx.channel, {})

            # a photo intent without a photo capability may still carry a sandwich order
            text = combined_text(response_text, user_text)
            if SANDWICH_KEYWORD in text and self.capabilities.has(ORDER_SANDWICH):
                args = {"filling": extract_filling(text)}
                return await self.capabilities.invoke(ORDER_SANDWICH, ctx.app_id, ctx.user_id, ctx.channel, args)
        except Exception as e:
            logger.warning("function call %s failed: %s", intent.value, e)
            return None
        return None
