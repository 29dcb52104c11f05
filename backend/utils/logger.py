"""
Centralized logging configuration for the assistant API

Usage:
    from utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Dispatching tool call")
    logger.warning("Rejected tool call", exc_info=True)
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False

# Third-party loggers that flood stdout at INFO
_NOISY_LOGGERS = (
    "urllib3",
    "httpx",
    "httpcore",
    "LiteLLM",
    "litellm",
    "openai",
    "openai._base_client",
)


def configure_logging(level: Optional[str] = None):
    """
    Configure logging for the entire application.
    Call this once at startup (main.create_app does it).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
    """
    global _configured

    if _configured:
        return

    level = level or "INFO"

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
        force=True
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    logging.getLogger().info(f"Logging configured at {level} level")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Configured logger instance
    """
    if not _configured:
        configure_logging()

    return logging.getLogger(name)


def log_tool_execution(logger: logging.Logger, tool_name: str, success: bool, duration_ms: float, error: Optional[str] = None):
    """Log a tool execution with consistent format"""
    status = "✅" if success else "❌"
    error_str = f" - {error}" if error else ""
    logger.info(
        f"{status} Tool {tool_name} ({duration_ms:.0f}ms){error_str}",
        extra={
            "tool_name": tool_name,
            "success": success,
            "duration_ms": duration_ms,
            "error": error,
            "type": "tool_execution"
        }
    )


def log_llm_call(logger: logging.Logger, model: str, tokens: Optional[int], duration_ms: float, attempt: int = 1):
    """Log a language-model call with consistent format"""
    attempt_str = f" (attempt {attempt})" if attempt > 1 else ""
    tokens_str = f" - {tokens} tokens" if tokens else ""
    logger.info(
        f"LLM {model}{attempt_str}{tokens_str} ({duration_ms:.0f}ms)",
        extra={
            "model": model,
            "tokens": tokens,
            "duration_ms": duration_ms,
            "attempt": attempt,
            "type": "llm_call"
        }
    )


def log_rejection(logger: logging.Logger, code: str, message: str, details: Optional[dict] = None):
    """Log a caller-correctable rejection (validation, safety, confirmation)"""
    logger.warning(
        f"⛔ {code}: {message}",
        extra={
            "code": code,
            "details": details or {},
            "type": "rejection"
        }
    )
