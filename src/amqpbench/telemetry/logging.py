import logging
import logging.config
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Union

from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    ConsoleLogExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.resources import Resource
from pydantic import BaseModel, Field, model_validator

from ._resource import _inject_otel_resource_attributes

Level = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(threadName)s] [%(name)s] %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# ============================================================
# Pydantic CONFIG OBJECTS
# ============================================================


class LogFormatter(BaseModel):
    name: str = "default"
    fmt: str = DEFAULT_FORMAT
    datefmt: str = DEFAULT_DATEFMT


class BaseLogHandler(BaseModel):
    level: Level = "INFO"
    formatter: str = "default"


class ConsoleLogHandler(BaseLogHandler):
    type: Literal["console"] = "console"
    stream: Literal["stdout", "stderr"] = "stderr"


class FileLogHandler(BaseLogHandler):
    """
    `filename` may contain {run}, {pid} and {timestamp} placeholders.
    """

    type: Literal["file"] = "file"
    filename: str
    mode: Literal["a", "w"] = "a"


class JSONLogHandler(BaseLogHandler):
    type: Literal["json"] = "json"
    formatter: str = "json"
    filename: str = ""


class LogProcessor(BaseModel):
    processor: Any
    config: Dict[str, Any] = Field(default_factory=dict)
    exporters: List[Any] = Field(default_factory=list)


class OTLPLogHandler(BaseLogHandler):
    type: Literal["otlp"] = "otlp"
    resource: Dict[str, Any] = Field(default_factory=dict)
    processors: List[LogProcessor] = Field(default_factory=list)

    @model_validator(mode="after")
    def confirm_processors(self):
        if not self.processors:
            raise ValueError("OTLPLogHandler requires at least one processor.")
        return self


LogHandlers = Union[ConsoleLogHandler, FileLogHandler, JSONLogHandler, OTLPLogHandler]


class LoggingConfig(BaseModel):
    level: Level = "INFO"
    handlers: List[LogHandlers] = Field(default_factory=lambda: [ConsoleLogHandler()])
    formatters: List[LogFormatter] = Field(default_factory=list)
    # Loggers that should not inherit the root level (pika is chatty at INFO).
    quiet_loggers: Dict[str, Level] = Field(default_factory=lambda: {"pika": "WARNING"})


# ============================================================
# Handler builders
# ============================================================


def _resolve_filename(template: str, metadata: dict) -> str:
    filename = template.format(
        run=metadata["run_name"],
        pid=metadata["pid"],
        timestamp=datetime.now().strftime("%Y-%m-%d_%H-%M-%S"),
    )
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    return filename


def _build_console_handler_dict(cfg: ConsoleLogHandler, metadata: dict):
    return {
        "class": "logging.StreamHandler",
        "level": cfg.level,
        "formatter": cfg.formatter,
        "stream": f"ext://sys.{cfg.stream}",
    }


def _build_file_handler_dict(cfg: FileLogHandler, metadata: dict):
    return {
        "class": "logging.FileHandler",
        "level": cfg.level,
        "formatter": cfg.formatter,
        "filename": _resolve_filename(cfg.filename, metadata),
        "mode": cfg.mode,
        "encoding": "utf-8",
    }


def _build_json_handler_dict(cfg: JSONLogHandler, metadata: dict):
    if cfg.filename:
        target = {
            "class": "logging.FileHandler",
            "filename": _resolve_filename(cfg.filename, metadata),
            "encoding": "utf-8",
        }
    else:
        target = {"class": "logging.StreamHandler", "stream": "ext://sys.stdout"}

    return {"level": cfg.level, "formatter": cfg.formatter, **target}


def _build_otlp_handler_dict(cfg: OTLPLogHandler, metadata: dict):
    resource = Resource(attributes=_inject_otel_resource_attributes(resource=cfg.resource, metadata=metadata))
    provider = LoggerProvider(resource=resource)

    for p in cfg.processors:
        for exporter in p.exporters:
            provider.add_log_record_processor(p.processor(exporter, **p.config))

    set_logger_provider(provider)

    return {
        "class": "opentelemetry.sdk._logs.LoggingHandler",
        "level": cfg.level,
        "formatter": cfg.formatter,
    }


_LOG_HANDLER_BUILDERS_DICT = {
    "console": _build_console_handler_dict,
    "file": _build_file_handler_dict,
    "json": _build_json_handler_dict,
    "otlp": _build_otlp_handler_dict,
}

# ============================================================
# Apply LoggingConfig through dictConfig
# ============================================================

_LOGGING_CONFIGURED = False


def build_dict_config(cfg: LoggingConfig, metadata: dict) -> dict:
    formatters = {f.name: {"format": f.fmt, "datefmt": f.datefmt} for f in cfg.formatters}
    formatters.setdefault("default", {"format": DEFAULT_FORMAT, "datefmt": DEFAULT_DATEFMT})
    formatters["json"] = {
        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
        "fmt": "%(asctime)s %(levelname)s %(threadName)s %(name)s %(message)s",
    }

    handlers = {}
    for idx, handler_cfg in enumerate(cfg.handlers):
        builder = _LOG_HANDLER_BUILDERS_DICT[handler_cfg.type]
        handlers[f"handler_{idx}"] = builder(handler_cfg, metadata)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": {name: {"level": level} for name, level in cfg.quiet_loggers.items()},
        "root": {"level": cfg.level, "handlers": list(handlers)},
    }


def _apply_logging_config(cfg: LoggingConfig, metadata: dict) -> bool:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return False

    logging.config.dictConfig(build_dict_config(cfg, metadata))
    _LOGGING_CONFIGURED = True
    return True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "OTLPLogExporter",
    "BatchLogRecordProcessor",
    "ConsoleLogExporter",
    "SimpleLogRecordProcessor",
    "LoggerProvider",
    "LoggingConfig",
    "ConsoleLogHandler",
    "FileLogHandler",
    "JSONLogHandler",
    "OTLPLogHandler",
    "LogProcessor",
    "LogFormatter",
    "get_logger",
]
