# centralized configuration loader
# runs load_dotenv() to read .env
# decouples code from environment so providers/flows/limits can be swapped without code change

import os
from dotenv import load_dotenv

load_dotenv()

TRUTHY = {"1", "true", "yes", "y"}
PROVIDERS = {"langflow", "openai"}

# Provider
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "langflow").strip().lower()
if LLM_PROVIDER not in PROVIDERS:
    raise ValueError(f"Unknown LLM_PROVIDER {LLM_PROVIDER!r}, expected one of {sorted(PROVIDERS)}")
USE_RESPONSES_API = os.getenv("USE_RESPONSES_API", "false").lower() in TRUTHY

# OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")

# Langflow
LANGFLOW_URL = os.getenv("LANGFLOW_URL", "http://127.0.0.1:7860").rstrip("/")
LANGFLOW_API_KEY = os.getenv("LANGFLOW_API_KEY", "")
LANGFLOW_FLOW_ID = os.getenv("LANGFLOW_FLOW_ID", "")

# Request defaults (appId has none, it must be sent; model defaults per provider)
DEFAULT_CHANNEL = os.getenv("DEFAULT_CHANNEL", "ccc")
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "111")

# Streaming
STREAM_CHUNK_DELAY_MS = int(os.getenv("STREAM_CHUNK_DELAY_MS", "50"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))

# Sessions, 0 means never expire / unbounded
SESSION_TTL_MIN = int(os.getenv("SESSION_TTL_MIN", "0"))
SESSION_MAX_ENTRIES = int(os.getenv("SESSION_MAX_ENTRIES", "0"))

# Background knowledge prepended to every conversation
KNOWLEDGE_FILE = os.getenv("KNOWLEDGE_FILE", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
