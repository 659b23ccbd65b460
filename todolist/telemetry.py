# telemetry.py — OpenTelemetry tracing for the todo API
"""
Configures distributed tracing for FastAPI and SQLAlchemy.

Only used when OTEL_ENABLED is true; the OpenTelemetry packages come from the
`telemetry` extra. Spans are exported over OTLP/gRPC when
OTEL_EXPORTER_OTLP_ENDPOINT is set, otherwise the provider is registered
without an exporter (useful for local span inspection).
"""
import logging

from todolist import config

logger = logging.getLogger("todolist.telemetry")


def setup_telemetry(app=None, engine=None):
    """Register a tracer provider and instrument the app and the database engine."""
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    resource = Resource.create({
        SERVICE_NAME: config.APP_NAME,
        "service.version": config.APP_VERSION,
        "deployment.environment": config.ENVIRONMENT,
    })
    provider = TracerProvider(resource=resource)
    if config.OTEL_EXPORTER_OTLP_ENDPOINT:
        exporter = OTLPSpanExporter(endpoint=config.OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
        logger.info("FastAPI instrumented with OpenTelemetry")
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)
        logger.info("SQLAlchemy instrumented with OpenTelemetry")

    logger.info(f"OpenTelemetry initialised -> {config.OTEL_EXPORTER_OTLP_ENDPOINT or 'no exporter'}")
    return provider
