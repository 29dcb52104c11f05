"""
Configuration settings for the backend
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Application configuration"""

    # LLM API Keys and Model
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

    # Timeouts (seconds) - every external call is bounded by min(per-call, remaining budget)
    LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
    TOOL_TIMEOUT_SECONDS = float(os.getenv("TOOL_TIMEOUT_SECONDS", "30"))
    REQUEST_BUDGET_SECONDS = float(os.getenv("REQUEST_BUDGET_SECONDS", "90"))

    # Never more than one retry on the model call
    LLM_MAX_RETRIES = min(int(os.getenv("LLM_MAX_RETRIES", "1")), 1)

    # Conversation loop
    MAX_TOOL_ROUNDS = int(os.getenv("MAX_TOOL_ROUNDS", "3"))
    NUDGE_TOOL_USE = _env_bool("NUDGE_TOOL_USE", "true")

    # Confirmation tokens (HMAC). Empty secret means a random per-process secret.
    CONFIRMATION_SECRET = os.getenv("CONFIRMATION_SECRET", "")
    CONFIRMATION_TTL_SECONDS = int(os.getenv("CONFIRMATION_TTL_SECONDS", "900"))

    # Rate limiting on POST /chat
    RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "30"))
    RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    # Dotted path of the module exposing COLLABORATORS = {tool_name: callable}
    COLLABORATORS_MODULE = os.getenv("COLLABORATORS_MODULE", "")

    # API Configuration
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("PORT", os.getenv("API_PORT", "8000")))

    # CORS - Parse comma-separated origins
    CORS_ORIGINS = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:3001"
    ).split(",")

    # Observability
    ENABLE_TRACING = _env_bool("ENABLE_TRACING", "false")
    ENABLE_TIMING_LOGS = _env_bool("ENABLE_TIMING_LOGS", "true")
