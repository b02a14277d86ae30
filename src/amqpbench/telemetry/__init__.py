from . import logging, metrics, tracing

__all__ = ["logging", "metrics", "tracing"]
