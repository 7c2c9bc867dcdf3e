"""
used to load the background knowledge text prepended to every conversation
"""
import logging
from pathlib import Path

from chatgate.core import config

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_FILE = Path(__file__).resolve().parents[1] / "prompts" / "knowledge.txt"


def get_background_knowledge() -> str:
    p = Path(config.KNOWLEDGE_FILE) if config.KNOWLEDGE_FILE else DEFAULT_KNOWLEDGE_FILE
    try:
        return p.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.warning("background knowledge file %s not found, continuing without it", p)
        return ""
