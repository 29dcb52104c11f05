"""
OpenTelemetry tracing setup

When ENABLE_TRACING is set, installs an SDK TracerProvider exporting to the
console and auto-instruments FastAPI and outgoing httpx calls (litellm's
transport). Otherwise the API's default no-op tracer is used and every helper
below returns without effect because no span is recording.
"""
from typing import Optional, Dict, Any

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.trace import Status, StatusCode

from config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

_provider_installed = False


def setup_tracing(app):
    """
    Setup OpenTelemetry tracing with auto-instrumentation

    Args:
        app: FastAPI application instance
    """
    global _provider_installed

    if not Config.ENABLE_TRACING:
        return

    # The global provider can only be set once per process
    if not _provider_installed:
        resource = Resource.create({
            "service.name": "verifolio-assistant",
            "service.version": "1.0.0",
        })
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        trace.set_tracer_provider(provider)
        HTTPXClientInstrumentor().instrument()
        _provider_installed = True
        logger.info("🔍 OpenTelemetry tracing enabled (console export)")

    FastAPIInstrumentor.instrument_app(app)


def get_tracer(name: str = "verifolio"):
    """
    Get a tracer for manual span creation

    Usage:
        tracer = get_tracer(__name__)

        with tracer.start_as_current_span("tool.execute"):
            result = await runner.execute(call)
    """
    return trace.get_tracer(name)


def add_span_attributes(attributes: Dict[str, Any]):
    """
    Add attributes to the current span

    Args:
        attributes: Dictionary of key-value pairs to add to the span.
            None values are skipped (OpenTelemetry rejects them).
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)


def add_span_event(name: str, attributes: Optional[Dict[str, Any]] = None):
    """
    Add an event to the current span timeline

    Args:
        name: Event name (e.g., "retry", "confirmation_issued")
        attributes: Optional additional context
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})


def record_exception(exception: BaseException):
    """
    Record an exception in the current span and mark it as failed

    Args:
        exception: The exception to record
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception)))


def set_span_status(success: bool, description: Optional[str] = None):
    """
    Set the status of the current span

    Args:
        success: Whether the operation succeeded
        description: Optional description (used for errors)
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        if success:
            span.set_status(Status(StatusCode.OK))
        else:
            span.set_status(Status(StatusCode.ERROR, description or "Operation failed"))
