from .consume import ConsumeOperation, format_headers
from .outcome import Delivery, Outcome, OutcomeKind, classify
from .publish import PublishOperation

__all__ = [
    "ConsumeOperation",
    "Delivery",
    "Outcome",
    "OutcomeKind",
    "PublishOperation",
    "classify",
    "format_headers",
]
