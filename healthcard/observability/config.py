"""
OpenTelemetry Configuration

Sets up distributed tracing and structured logging for the health card review
API.
"""

import json
import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

SERVICE_NAME = 'healthcard-review-api'

# LogRecord attributes that are not caller-supplied extras
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


def setup_observability(environment: str = None) -> bool:
    """
    Install a tracer provider when tracing is enabled.

    Returns:
        True when a provider was installed
    """
    environment = environment or os.getenv('ENVIRONMENT', 'development')
    otel_enabled = os.getenv('OTEL_ENABLED', 'false').lower() == 'true'

    setup_structured_logging(environment)

    if not otel_enabled:
        return False

    # Environment-specific sampling
    default_ratio = {'production': '0.1', 'staging': '0.5'}.get(environment, '1.0')
    sampler = TraceIdRatioBased(float(os.getenv('OTEL_TRACES_SAMPLER_ARG', default_ratio)))

    resource = Resource.create({
        "service.name": os.getenv('OTEL_SERVICE_NAME', SERVICE_NAME),
        "service.version": os.getenv('SERVICE_VERSION', '0.1.0'),
        "deployment.environment": environment
    })
    tracer_provider = TracerProvider(sampler=sampler, resource=resource)

    otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
    if otlp_endpoint:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint), max_export_batch_size=512)
        )
    elif environment == 'development':
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(tracer_provider)
    logging.getLogger(__name__).info(
        "Tracing enabled",
        extra={"environment": environment, "otlp_endpoint": otlp_endpoint}
    )
    return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, extras and trace id included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry['trace_id'] = format(span_context.trace_id, '032x')
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                entry[key] = value
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_structured_logging(environment: str):
    """Configure the root logger once; JSON lines outside development."""
    log_level = {
        'production': logging.INFO,
        'staging': logging.INFO,
        'development': logging.DEBUG
    }.get(environment, logging.INFO)

    handler = logging.StreamHandler()
    if environment == 'development':
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    else:
        handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    if not any(getattr(h, '_healthcard', False) for h in root.handlers):
        handler._healthcard = True
        root.addHandler(handler)
    root.setLevel(log_level)

    if environment == 'production':
        # Production: Reduce noise, focus on errors and business events
        logging.getLogger('pymongo').setLevel(logging.WARNING)
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
