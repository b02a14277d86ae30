import threading
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from pydantic import BaseModel, ConfigDict, Field

from ._resource import _inject_otel_resource_attributes

# ============================================================
# Pydantic CONFIG OBJECTS
# ============================================================


class TraceSamplerConfig(BaseModel):
    """
    OpenTelemetry trace sampling strategy (AlwaysOn, TraceIdRatioBased, ...).
    """

    sampler: Any
    args: Dict[str, Any] = Field(default_factory=dict)


class SpanProcessor(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    processor: Any = BatchSpanProcessor
    config: Dict[str, Any] = Field(default_factory=dict)
    exporters: List[Any] = Field(default_factory=list)


class TracingConfig(BaseModel):
    resource: Dict[str, Any] = Field(default_factory=dict)
    sampler: Optional[TraceSamplerConfig] = None
    processors: List[SpanProcessor] = Field(default_factory=list)


# ============================================================
# INTERNAL STATE
# ============================================================

_TRACING_CONFIGURED = False
_TRACING_LOCK = threading.Lock()


def _apply_tracing_config(cfg: TracingConfig, metadata: dict) -> bool:
    """
    Build and register the global TracerProvider once per process.
    """
    global _TRACING_CONFIGURED

    with _TRACING_LOCK:
        if _TRACING_CONFIGURED:
            return False

        resource = Resource(attributes=_inject_otel_resource_attributes(resource=cfg.resource, metadata=metadata))

        if cfg.sampler:
            provider = TracerProvider(resource=resource, sampler=cfg.sampler.sampler(**cfg.sampler.args))
        else:
            provider = TracerProvider(resource=resource)

        for p in cfg.processors:
            for exporter in p.exporters:
                provider.add_span_processor(p.processor(exporter, **p.config))

        trace.set_tracer_provider(provider)
        _TRACING_CONFIGURED = True
        return True


def get_tracer(name: str = "amqpbench"):
    return trace.get_tracer(name)


__all__ = [
    "OTLPSpanExporter",
    "BatchSpanProcessor",
    "SimpleSpanProcessor",
    "TraceSamplerConfig",
    "SpanProcessor",
    "TracingConfig",
    "get_tracer",
]
