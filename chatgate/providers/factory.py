import logging
from chatgate.core import config
from chatgate.providers.base import CompletionProvider

logger = logging.getLogger(__name__)


def select_provider() -> CompletionProvider:
    # only static configuration decides; LLM_PROVIDER is validated when config loads
    if config.LLM_PROVIDER == "langflow":
        from chatgate.providers.langflow import LangflowProvider
        logger.info("Using Langflow LLM provider")
        return LangflowProvider()
    if config.USE_RESPONSES_API:
        from chatgate.providers.openai import OpenAIResponsesProvider
        logger.info("Using OpenAI Responses API")
        return OpenAIResponsesProvider()
    from chatgate.providers.openai import OpenAIChatProvider
    logger.info("Using OpenAI Chat Completions API")
    return OpenAIChatProvider()
