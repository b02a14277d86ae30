import logging

from ..operations import PublishOperation
from ..operations.outcome import Outcome, classify
from .base import BaseSampler
from .result import ResponseCode, SampleResult

logger = logging.getLogger(__name__)


class PublisherSampler(BaseSampler):
    """
    Publishes the configured message `iterations` times per sample.

    The timed window covers building the properties, the publish loop and the
    optional commit. Channel setup happens before the window opens.
    """

    kind = "publish"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.operation = PublishOperation(self.config)

    def run_sample(self, result: SampleResult) -> Outcome:
        try:
            channel = self.ensure_channel()
        except Exception as e:
            logger.error(f"[{self.name}] Failed to initialize channel: {e!r}")
            outcome = classify(e)
            result.set_response(ResponseCode.GENERIC, outcome.message)
            return outcome

        payload = self.config.publish.body

        result.sample_start()
        try:
            outcome = self.operation.publish(channel, payload)
        finally:
            result.sample_end()

        if outcome.ok:
            result.sampler_data = self.config.publish.message
            result.response_data = payload.decode("utf-8", errors="replace")
            result.set_response_ok()
        else:
            result.set_response(ResponseCode.PUBLISH_FAILURE, outcome.message)

        return outcome
