import logging
import os
import socket
import time
import uuid
from concurrent import futures
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import pika
from pydantic import BaseModel, Field

from . import telemetry
from .config import SamplerConfig
from .sampler import BaseSampler, ConsumerSampler, PublisherSampler, SampleResult

logger = logging.getLogger(__name__)
tracer = telemetry.tracing.get_tracer(__name__)


class SamplerKind(str, Enum):
    PUBLISH = "publish"
    CONSUME = "consume"


SAMPLERS: Dict[SamplerKind, type] = {
    SamplerKind.PUBLISH: PublisherSampler,
    SamplerKind.CONSUME: ConsumerSampler,
}


class RunConfig(BaseModel):
    """
    Declarative configuration for one load run:
      - which sampler to drive and its broker config
      - how many virtual users and how many samples each
      - telemetry configuration
    """

    name: str = "amqpbench"
    sampler: SamplerKind
    config: SamplerConfig = Field(default_factory=SamplerConfig)
    users: int = Field(default=1, ge=1)
    loops: int = Field(default=1, ge=1)
    logging: Optional[telemetry.logging.LoggingConfig] = None
    metrics: Optional[telemetry.metrics.MetricsConfig] = None
    tracing: Optional[telemetry.tracing.TracingConfig] = None


class RunMetadata(BaseModel):
    run_name: str
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sampler: str
    pid: int = Field(default_factory=os.getpid)
    host_name: str = Field(default_factory=socket.gethostname)
    start_time: str = Field(default_factory=lambda: datetime.now().isoformat())


class RunSummary(BaseModel):
    total: int = 0
    successes: int = 0
    failures: int = 0
    by_code: Dict[str, int] = Field(default_factory=dict)
    mean_elapsed_ms: float = 0.0
    max_elapsed_ms: float = 0.0
    stopped_users: int = 0
    duration_seconds: float = 0.0

    @classmethod
    def from_results(cls, results: List[SampleResult], stopped_users: int = 0, duration: float = 0.0) -> "RunSummary":
        by_code: Dict[str, int] = {}
        for r in results:
            by_code[r.response_code] = by_code.get(r.response_code, 0) + 1

        elapsed = [r.elapsed_ms for r in results]
        successes = sum(1 for r in results if r.success)
        return cls(
            total=len(results),
            successes=successes,
            failures=len(results) - successes,
            by_code=by_code,
            mean_elapsed_ms=sum(elapsed) / len(elapsed) if elapsed else 0.0,
            max_elapsed_ms=max(elapsed, default=0.0),
            stopped_users=stopped_users,
            duration_seconds=duration,
        )


# -------------------------------------------------------------
# TELEMETRY INITIALIZATION
# -------------------------------------------------------------
def init_telemetry(config: RunConfig, metadata: dict) -> None:
    if config.logging:
        telemetry.logging._apply_logging_config(cfg=config.logging, metadata=metadata)

    if config.tracing:
        telemetry.tracing._apply_tracing_config(cfg=config.tracing, metadata=metadata)

    if config.metrics:
        telemetry.metrics._apply_metrics_config(cfg=config.metrics, metadata=metadata)


# -------------------------------------------------------------
# VIRTUAL USER
# -------------------------------------------------------------
def run_virtual_user(sampler: BaseSampler, loops: int) -> Tuple[List[SampleResult], bool]:
    """
    Drive one sampler through its whole lifecycle on the calling thread.
    Returns the results and whether the sampler asked to stop early.
    """
    results: List[SampleResult] = []
    stopped = False

    sampler.thread_started()
    try:
        for _ in range(loops):
            result = sampler.sample()
            results.append(result)
            if result.stop_thread:
                stopped = True
                break
    finally:
        sampler.thread_finished()

    return results, stopped


# -------------------------------------------------------------
# PUBLIC API: RUNNER
# -------------------------------------------------------------
def run(
    config: RunConfig,
    connection_factory: Callable[..., pika.BlockingConnection] = pika.BlockingConnection,
) -> RunSummary:
    metadata = RunMetadata(run_name=config.name, sampler=config.sampler.value).model_dump()
    init_telemetry(config, metadata)

    sampler_cls = SAMPLERS[config.sampler]
    results: List[SampleResult] = []
    stopped_users = 0

    start = time.perf_counter()
    with tracer.start_as_current_span(
        f"{config.name}.run",
        attributes={"run.id": metadata["run_id"], "run.users": config.users, "run.loops": config.loops},
    ):
        logger.info(f"[{config.name}] Starting {config.users} {config.sampler.value} user(s) x {config.loops} loop(s)")

        with futures.ThreadPoolExecutor(max_workers=config.users, thread_name_prefix="vuser") as executor:
            pending = [
                executor.submit(
                    run_virtual_user,
                    sampler_cls(config.config, connection_factory, name=config.config.label),
                    config.loops,
                )
                for _ in range(config.users)
            ]

            for f in futures.as_completed(pending):
                try:
                    user_results, stopped = f.result()
                except Exception:
                    logger.exception(f"[{config.name}] Virtual user crashed")
                    stopped_users += 1
                    continue
                results.extend(user_results)
                stopped_users += int(stopped)

    summary = RunSummary.from_results(results, stopped_users=stopped_users, duration=time.perf_counter() - start)
    logger.info(
        f"[{config.name}] Finished. Samples={summary.total} Successes={summary.successes} "
        f"in {summary.duration_seconds:.2f} seconds"
    )
    return summary
