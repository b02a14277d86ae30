import logging

from pika.adapters.blocking_connection import BlockingChannel

from ..operations import ConsumeOperation, format_headers
from ..operations.outcome import Outcome, OutcomeKind, classify
from .base import BaseSampler
from .result import ResponseCode, SampleResult

logger = logging.getLogger(__name__)

READ_RESPONSE_SKIPPED = "Read response is false."

_FAILURE_CODES = {
    OutcomeKind.BROKER_CLOSED: ResponseCode.SHUTDOWN,
    OutcomeKind.CANCELLED: ResponseCode.CANCELLED,
    OutcomeKind.TRANSPORT: ResponseCode.IO_FAILURE,
    OutcomeKind.FAILED: ResponseCode.GENERIC,
}


class ConsumerSampler(BaseSampler):
    """
    Fetches one message per sample with basic.get, acknowledging it unless
    auto-ack is on. The timed window includes channel setup.
    """

    kind = "consume"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.operation = ConsumeOperation(self.config)

    def setup_channel(self, channel: BlockingChannel) -> None:
        channel.basic_qos(prefetch_count=self.config.prefetch_count)
        super().setup_channel(channel)

    def before_close(self) -> None:
        if self.config.purge_queue_on_end:
            self.session.purge_queue_quietly()

    def run_sample(self, result: SampleResult) -> Outcome:
        result.sample_start()
        try:
            try:
                channel = self.ensure_channel()
            except Exception as e:
                logger.warning(f"[{self.name}] Failed to initialize channel: {e!r}")
                outcome = classify(e)
            else:
                outcome = self.operation.consume(channel)
        finally:
            result.sample_end()

        if outcome.kind is OutcomeKind.OK:
            delivery = outcome.delivery
            if self.config.read_response:
                result.response_data = delivery.text
                result.sampler_data = str(delivery.message_count)
            else:
                result.sampler_data = READ_RESPONSE_SKIPPED
            result.response_headers = format_headers(delivery)
            result.set_response_ok()
        elif outcome.kind is OutcomeKind.NO_MESSAGE:
            result.set_response(ResponseCode.NO_MESSAGE, f"No message available in queue {self.config.queue.name}")
        else:
            result.set_response(_FAILURE_CODES[outcome.kind], outcome.message)

        return outcome
