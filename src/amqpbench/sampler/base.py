import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel

from .. import exceptions, telemetry
from ..config import SamplerConfig
from ..connector import AmqpSession
from ..operations.outcome import Outcome, OutcomeKind, classify
from . import metrics as sampler_metrics
from .result import ResponseCode, SampleResult

logger = logging.getLogger(__name__)
tracer = telemetry.tracing.get_tracer(__name__)


class SamplerState(str, Enum):
    CREATED = "CREATED"
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


_TERMINAL_STATES = frozenset({SamplerState.CLOSING, SamplerState.CLOSED})


class BaseSampler(ABC):
    """
    Lifecycle shared by the publisher and consumer samplers.

    The host creates one instance per virtual user and drives it from a single
    thread: `thread_started()`, then `sample()` repeatedly, then
    `thread_finished()`. `interrupt()` may also arrive from a watchdog thread.

    CREATED -> IDLE -> ACTIVE -> IDLE ... -> CLOSING -> CLOSED
    """

    kind = "base"

    def __init__(
        self,
        config: SamplerConfig,
        connection_factory: Callable[..., pika.BlockingConnection] = pika.BlockingConnection,
        name: Optional[str] = None,
    ) -> None:
        self.config = config
        self.name = name or config.label
        self.session = AmqpSession(config, connection_factory, setup=self.setup_channel)
        self.state = SamplerState.CREATED
        self._state_lock = threading.Lock()

    # =====================================================================
    # SUBCLASS HOOKS
    # =====================================================================
    @abstractmethod
    def run_sample(self, result: SampleResult) -> Outcome:
        """Perform the operation, fill in `result` and return the outcome."""
        raise NotImplementedError

    def setup_channel(self, channel: BlockingChannel) -> None:
        """Runs once on every freshly provisioned channel."""
        if self.config.use_tx:
            channel.tx_select()

    def before_close(self) -> None:
        """Runs at the start of the close path; must not raise."""
        return

    # =====================================================================
    # HOST LIFECYCLE
    # =====================================================================
    def thread_started(self) -> None:
        with self._state_lock:
            if self.state is SamplerState.CREATED:
                self.state = SamplerState.IDLE
        logger.info(f"[{self.name}] Thread started")

    def thread_finished(self) -> None:
        logger.info(f"[{self.name}] Thread finished")
        self._shutdown("thread finished")

    def interrupt(self) -> bool:
        """
        Close the sampler from any state but CLOSING/CLOSED.
        Returns True when this call performed the close.
        """
        return self._shutdown("interrupted")

    @property
    def closed(self) -> bool:
        return self.state in _TERMINAL_STATES

    # =====================================================================
    # SAMPLE
    # =====================================================================
    def sample(self, context: Any = None) -> SampleResult:
        """
        Take one sample. Always returns a result; no broker or network error
        reaches the caller.
        """
        result = SampleResult(label=self.name)

        with self._state_lock:
            if self.state is SamplerState.CREATED:
                self.state = SamplerState.IDLE
            is_closed = self.state in _TERMINAL_STATES
            if not is_closed:
                self.state = SamplerState.ACTIVE

        if is_closed:
            error = exceptions.SamplerClosedError()
            result.set_response(ResponseCode.GENERIC, str(error))
            result.outcome = OutcomeKind.FAILED
            result.stop_thread = True
            return result

        with tracer.start_as_current_span(
            f"{self.__class__.__name__}.sample",
            attributes={"sampler.name": self.name, "sampler.kind": self.kind},
        ) as span:
            try:
                outcome = self.run_sample(result)
            except Exception as e:
                logger.exception(f"[{self.name}] Unexpected error while sampling")
                result.sample_end()
                outcome = classify(e)
                result.set_response(ResponseCode.GENERIC, outcome.message)

            result.outcome = outcome.kind
            span.set_attribute("sampler.response_code", result.response_code)
            span.set_attribute("sampler.outcome", outcome.kind.value)

        with self._state_lock:
            if self.state is SamplerState.ACTIVE:
                self.state = SamplerState.IDLE
            interrupted = self.state in _TERMINAL_STATES

        if interrupted:
            # Interrupted mid-sample: drop anything the sample opened after the close.
            logger.info(f"[{self.name}] Interrupted while sampling")
            result.stop_thread = True
            self.session.close()
        elif outcome.escalates:
            logger.warning(f"[{self.name}] {outcome.kind.value}: {outcome.message}; interrupting sampler")
            result.stop_thread = True
            sampler_metrics.record_interrupt(self.kind, outcome.kind.value)
            self.interrupt()

        sampler_metrics.record_sample(
            sampler=self.kind,
            response_code=result.response_code,
            success=result.success,
            duration=result.elapsed_ms / 1000.0,
        )
        return result

    def ensure_channel(self) -> BlockingChannel:
        return self.session.ensure_channel()

    # =====================================================================
    # CLOSE PATH
    # =====================================================================
    def _shutdown(self, reason: str) -> bool:
        with self._state_lock:
            if self.state in _TERMINAL_STATES:
                return False
            self.state = SamplerState.CLOSING

        logger.info(f"[{self.name}] Closing ({reason})")
        try:
            self.before_close()
        except Exception as e:
            logger.error(f"[{self.name}] Cleanup failed: {e!r}")
        self.session.close()

        with self._state_lock:
            self.state = SamplerState.CLOSED
        return True
