from . import metrics
from .base import BaseSampler, SamplerState
from .consumer import ConsumerSampler
from .publisher import PublisherSampler
from .result import ResponseCode, SampleResult

__all__ = [
    "BaseSampler",
    "ConsumerSampler",
    "PublisherSampler",
    "ResponseCode",
    "SampleResult",
    "SamplerState",
    "metrics",
]
