import json
import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils.env import load_env

DEFAULT_PORT = 5672
DEFAULT_TIMEOUT = 1000  # milliseconds
DEFAULT_ITERATIONS = 1
DEFAULT_PREFETCH_COUNT = 0  # unlimited
DEFAULT_CONTENT_TYPE = "text/plain"

# =====================================================================
#   INTERNAL NORMALIZERS
# =====================================================================


def _normalize_optional(v):
    """
    Normalize optional env-driven values.

    Accepts None, "", "none" / "null" and numeric strings.
    Lets Pydantic handle final coercion.
    """
    if v is None:
        return None

    if isinstance(v, str):
        v = v.strip()
        if v == "" or v.lower() in {"none", "null"}:
            return None

    return v


def _normalize_bool(v):
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on"}
    return v


def _positive_or_none(v):
    v = _normalize_optional(v)
    if v is None:
        return None
    v = int(v)
    return v if v > 0 else None


def _positive_or_default(v, default: int) -> int:
    v = _normalize_optional(v)
    if v is None:
        return default
    v = int(v)
    return v if v > 0 else default


# =====================================================================
#   TOPOLOGY
# =====================================================================


class ExchangeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="", description="Exchange to declare; empty means the default exchange")
    type: str = Field(default="direct", description="direct, fanout, topic or headers")
    durable: bool = True
    auto_delete: bool = True
    redeclare: bool = Field(default=False, description="Delete the exchange before declaring it")

    @field_validator("name", "type", mode="before")
    @classmethod
    def _normalize_strings(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("durable", "auto_delete", "redeclare", mode="before")
    @classmethod
    def _normalize_flags(cls, v):
        return _normalize_bool(v)


class QueueConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = ""
    durable: bool = True
    exclusive: bool = False
    auto_delete: bool = False
    redeclare: bool = Field(default=False, description="Delete the queue before declaring it")
    message_ttl: Optional[int] = Field(default=None, description="x-message-ttl in milliseconds")
    message_expires: Optional[int] = Field(default=None, description="x-expires in milliseconds")
    max_priority: Optional[int] = Field(default=None, description="x-max-priority")

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("durable", "exclusive", "auto_delete", "redeclare", mode="before")
    @classmethod
    def _normalize_flags(cls, v):
        return _normalize_bool(v)

    @field_validator("message_ttl", "message_expires", "max_priority", mode="before")
    @classmethod
    def _normalize_arguments(cls, v):
        return _positive_or_none(v)

    def arguments(self) -> Dict[str, int]:
        """Queue declare arguments, each included only when set."""
        arguments = {}
        if self.message_ttl is not None:
            arguments["x-message-ttl"] = self.message_ttl
        if self.message_expires is not None:
            arguments["x-expires"] = self.message_expires
        if self.max_priority is not None:
            arguments["x-max-priority"] = self.max_priority
        return arguments


# =====================================================================
#   PUBLISH METADATA
# =====================================================================


class PublishConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    message: str = Field(default="", description="Message body, sent as UTF-8 bytes")
    message_routing_key: Optional[str] = None
    message_type: Optional[str] = None
    reply_to_queue: Optional[str] = None
    content_type: Optional[str] = None
    correlation_id: Optional[str] = None
    message_id: Optional[str] = None
    persistent: bool = False
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator(
        "message_routing_key",
        "message_type",
        "reply_to_queue",
        "content_type",
        "correlation_id",
        "message_id",
        mode="before",
    )
    @classmethod
    def _normalize_optional_strings(cls, v):
        return _normalize_optional(v)

    @field_validator("message", mode="before")
    @classmethod
    def _normalize_message(cls, v):
        return "" if v is None else v

    @field_validator("persistent", mode="before")
    @classmethod
    def _normalize_persistent(cls, v):
        return _normalize_bool(v)

    @field_validator("headers", mode="before")
    @classmethod
    def _parse_headers(cls, v):
        v = _normalize_optional(v)
        if v is None:
            return {}
        if isinstance(v, str):
            v = json.loads(v)
        return {str(key): str(value) for key, value in dict(v).items()}

    @property
    def body(self) -> bytes:
        return self.message.encode("utf-8")


# =====================================================================
#   SAMPLER CONFIG
# =====================================================================


class SamplerConfig(BaseModel):
    """
    Immutable per-run configuration shared by publisher and consumer samplers.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str = "AMQP Sampler"

    # connection
    host: str = "localhost"
    port: int = DEFAULT_PORT
    virtual_host: str = "/"
    username: str = "guest"
    password: str = "guest"
    use_ssl: bool = False
    ssl_ca_certs: Optional[str] = Field(default=None, description="CA bundle used to verify the broker")
    connection_timeout: int = Field(default=DEFAULT_TIMEOUT, description="Connection timeout in milliseconds")

    # topology
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    routing_key: str = ""

    # sampling
    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    prefetch_count: int = DEFAULT_PREFETCH_COUNT
    use_tx: bool = False
    auto_ack: bool = False
    read_response: bool = True
    purge_queue_on_end: bool = False

    publish: PublishConfig = Field(default_factory=PublishConfig)

    @field_validator("use_ssl", "use_tx", "auto_ack", "read_response", "purge_queue_on_end", mode="before")
    @classmethod
    def _normalize_flags(cls, v):
        return _normalize_bool(v)

    @field_validator("port", mode="before")
    @classmethod
    def _normalize_port(cls, v):
        return _positive_or_default(v, DEFAULT_PORT)

    @field_validator("connection_timeout", mode="before")
    @classmethod
    def _normalize_timeout(cls, v):
        return _positive_or_default(v, DEFAULT_TIMEOUT)

    @field_validator("iterations", mode="before")
    @classmethod
    def _normalize_iterations(cls, v):
        v = _normalize_optional(v)
        return DEFAULT_ITERATIONS if v is None else v

    @field_validator("prefetch_count", mode="before")
    @classmethod
    def _normalize_prefetch(cls, v):
        v = _normalize_optional(v)
        if v is None:
            return DEFAULT_PREFETCH_COUNT
        return max(int(v), 0)

    @field_validator("ssl_ca_certs", mode="before")
    @classmethod
    def _normalize_ca(cls, v):
        return _normalize_optional(v)

    @field_validator("host", "virtual_host", "routing_key", mode="before")
    @classmethod
    def _normalize_strings(cls, v):
        return "" if v is None else str(v).strip()

    # ---------------------------------------------------------
    # Derived values
    # ---------------------------------------------------------
    @property
    def hosts(self) -> List[str]:
        """Configured host names, in failover order."""
        return [h.strip() for h in self.host.split(",") if h.strip()]

    @property
    def connection_timeout_seconds(self) -> float:
        return self.connection_timeout / 1000.0

    @property
    def message_routing_key(self) -> str:
        """
        Routing key used for publishing: the publish override, then the
        binding key, then the queue name when publishing to the default exchange.
        """
        if self.publish.message_routing_key:
            return self.publish.message_routing_key
        if self.routing_key:
            return self.routing_key
        if not self.exchange.name:
            return self.queue.name
        return ""

    # ---------------------------------------------------------
    # Loading
    # ---------------------------------------------------------
    @classmethod
    def from_env(
        cls,
        prefix: str = "AMQP_",
        env_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "SamplerConfig":
        """
        Build a config from flat environment variables.

        Top-level options map to `<prefix><OPTION>` (AMQP_HOST, AMQP_USE_TX)
        and nested ones to `<prefix><SECTION>_<OPTION>` (AMQP_QUEUE_NAME,
        AMQP_PUBLISH_HEADERS as a JSON object).
        """
        if environ is None:
            load_env(env_file)
            environ = os.environ

        data = {}
        for name, field in cls.model_fields.items():
            annotation = field.annotation
            if isinstance(annotation, type) and issubclass(annotation, BaseModel):
                section = {}
                for sub_name in annotation.model_fields:
                    key = f"{prefix}{name}_{sub_name}".upper()
                    if key in environ:
                        section[sub_name] = environ[key]
                if section:
                    data[name] = section
            else:
                key = f"{prefix}{name}".upper()
                if key in environ:
                    data[name] = environ[key]

        data.update(overrides)
        return cls(**data)
