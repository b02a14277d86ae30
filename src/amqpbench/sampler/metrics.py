"""
Built-in sampler instruments.

Instruments are created lazily on first use, so they bind to whatever
MeterProvider the runner configured (or the no-op provider otherwise).
"""

from typing import Callable

from .. import telemetry

_meter = None
_instruments = {}


def _get_meter():
    global _meter
    if _meter is None:
        _meter = telemetry.metrics.get_metric_meter("amqpbench.sampler")
    return _meter


def _get_instrument(name: str, factory: Callable):
    if name not in _instruments:
        _instruments[name] = factory(_get_meter())
    return _instruments[name]


def _samples_total():
    return _get_instrument(
        "sampler.samples.total",
        lambda m: m.create_counter(
            name="sampler.samples.total",
            description="Total number of samples taken",
            unit="1",
        ),
    )


def _samples_duration():
    return _get_instrument(
        "sampler.samples.duration",
        lambda m: m.create_histogram(
            name="sampler.samples.duration",
            description="Time spent inside the timed window of each sample",
            unit="s",
        ),
    )


def _interrupts_total():
    return _get_instrument(
        "sampler.interrupts.total",
        lambda m: m.create_counter(
            name="sampler.interrupts.total",
            description="Samplers interrupted after a broker shutdown or cancellation",
            unit="1",
        ),
    )


def record_sample(sampler: str, response_code: str, success: bool, duration: float) -> None:
    attributes = {
        "sampler": sampler,
        "response_code": response_code,
        "success": success,
    }
    _samples_total().add(1, attributes)
    _samples_duration().record(duration, attributes)


def record_interrupt(sampler: str, reason: str) -> None:
    _interrupts_total().add(1, {"sampler": sampler, "reason": reason})
