from . import exceptions
from .config import ExchangeConfig, PublishConfig, QueueConfig, SamplerConfig
from .connector import AmqpSession, ChannelProvisioner, ConnectionManager
from .operations import ConsumeOperation, Outcome, OutcomeKind, PublishOperation
from .runner import RunConfig, RunSummary, SamplerKind, run
from .sampler import (
    BaseSampler,
    ConsumerSampler,
    PublisherSampler,
    ResponseCode,
    SampleResult,
    SamplerState,
)
from .telemetry import (
    logging,
    metrics,
    tracing,
)
from .telemetry.logging import LoggingConfig
from .telemetry.metrics import MetricsConfig
from .telemetry.tracing import TracingConfig

__all__ = [
    "AmqpSession",
    "BaseSampler",
    "ChannelProvisioner",
    "ConnectionManager",
    "ConsumeOperation",
    "ConsumerSampler",
    "ExchangeConfig",
    "LoggingConfig",
    "MetricsConfig",
    "Outcome",
    "OutcomeKind",
    "PublishConfig",
    "PublishOperation",
    "PublisherSampler",
    "QueueConfig",
    "ResponseCode",
    "RunConfig",
    "RunSummary",
    "SampleResult",
    "SamplerConfig",
    "SamplerKind",
    "SamplerState",
    "TracingConfig",
    "exceptions",
    "logging",
    "metrics",
    "run",
    "tracing",
]

__version__ = "0.1.0"
