import logging

from pika.adapters.blocking_connection import BlockingChannel

from ..config import SamplerConfig
from .outcome import Delivery, Outcome, classify

logger = logging.getLogger(__name__)

TIMESTAMP_PARAMETER = "Timestamp"
EXCHANGE_PARAMETER = "Exchange"
ROUTING_KEY_PARAMETER = "Routing Key"
DELIVERY_TAG_PARAMETER = "Delivery Tag"


class ConsumeOperation:
    """
    Fetches at most one message with a single basic.get. Never registers a
    consumer and never waits for a message to arrive.
    """

    def __init__(self, config: SamplerConfig) -> None:
        self.config = config

    def consume(self, channel: BlockingChannel) -> Outcome:
        queue_name = self.config.queue.name
        auto_ack = self.config.auto_ack

        try:
            method, properties, body = channel.basic_get(queue=queue_name, auto_ack=auto_ack)
            if method is None:
                logger.debug(f"No message available in queue {queue_name}")
                return Outcome.no_message()

            delivery = Delivery.from_frames(method, properties, body)
            if not auto_ack:
                channel.basic_ack(delivery_tag=delivery.delivery_tag, multiple=False)
            if self.config.use_tx:
                channel.tx_commit()
        except Exception as e:
            logger.warning(f"Fetch from queue {queue_name} failed: {e!r}")
            return classify(e)

        return Outcome.success(delivery=delivery)


def format_headers(delivery: Delivery) -> str:
    """
    Render the delivery metadata as `key: value` lines: timestamp, exchange,
    routing key and delivery tag first, then the custom headers.
    """
    timestamp = "" if delivery.timestamp is None else delivery.timestamp
    lines = [
        f"{TIMESTAMP_PARAMETER}: {timestamp}",
        f"{EXCHANGE_PARAMETER}: {delivery.exchange}",
        f"{ROUTING_KEY_PARAMETER}: {delivery.routing_key}",
        f"{DELIVERY_TAG_PARAMETER}: {delivery.delivery_tag}",
    ]
    lines.extend(f"{key}: {value}" for key, value in delivery.headers.items())
    return "\n".join(lines) + "\n"
