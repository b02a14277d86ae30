from enum import Enum
from typing import Any, Dict, Optional

from pika import exceptions as pika_exceptions
from pydantic import BaseModel, ConfigDict, Field

from .. import exceptions


class OutcomeKind(str, Enum):
    OK = "OK"
    NO_MESSAGE = "NO_MESSAGE"
    BROKER_CLOSED = "BROKER_CLOSED"
    CANCELLED = "CANCELLED"
    TRANSPORT = "TRANSPORT"
    FAILED = "FAILED"


# Outcomes after which the connection is considered dead.
ESCALATING_KINDS = frozenset({OutcomeKind.BROKER_CLOSED, OutcomeKind.CANCELLED})


class Delivery(BaseModel):
    """
    A message fetched with basic.get: envelope, properties and body.
    """

    model_config = ConfigDict(frozen=True)

    body: bytes = b""
    exchange: str = ""
    routing_key: str = ""
    delivery_tag: int
    redelivered: bool = False
    message_count: int = 0
    timestamp: Optional[int] = None
    headers: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_frames(cls, method, properties, body) -> "Delivery":
        return cls(
            body=body or b"",
            exchange=method.exchange or "",
            routing_key=method.routing_key or "",
            delivery_tag=method.delivery_tag,
            redelivered=bool(method.redelivered),
            message_count=method.message_count or 0,
            timestamp=getattr(properties, "timestamp", None),
            headers=getattr(properties, "headers", None) or {},
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Outcome(BaseModel):
    """
    Tagged result of one protocol operation. Samplers decide escalation from
    `kind` instead of from exception unwinding.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: OutcomeKind
    payload: Optional[bytes] = None
    delivery: Optional[Delivery] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def escalates(self) -> bool:
        return self.kind in ESCALATING_KINDS

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return str(self.error) or self.error.__class__.__name__

    @classmethod
    def success(cls, payload: Optional[bytes] = None, delivery: Optional[Delivery] = None) -> "Outcome":
        return cls(kind=OutcomeKind.OK, payload=payload, delivery=delivery)

    @classmethod
    def no_message(cls) -> "Outcome":
        return cls(kind=OutcomeKind.NO_MESSAGE)


# =====================================================================
#   CLASSIFICATION
# =====================================================================

_BROKER_CLOSED = (
    exceptions.ShutdownSignal,
    pika_exceptions.ConnectionClosedByBroker,
    pika_exceptions.StreamLostError,
)

_CANCELLED = (
    exceptions.ConsumerCancelled,
    pika_exceptions.ConsumerCancelled,
)

_TRANSPORT = (
    exceptions.BrokerConnectionError,
    exceptions.ChannelProtocolError,
    pika_exceptions.AMQPError,
    OSError,
)


def classify(error: BaseException) -> Outcome:
    """Map an exception raised by a protocol call to a failure outcome."""
    if isinstance(error, _BROKER_CLOSED):
        kind = OutcomeKind.BROKER_CLOSED
    elif isinstance(error, _CANCELLED):
        kind = OutcomeKind.CANCELLED
    elif isinstance(error, _TRANSPORT):
        kind = OutcomeKind.TRANSPORT
    else:
        kind = OutcomeKind.FAILED
    return Outcome(kind=kind, error=error)
