import logging

import pika
from pika.adapters.blocking_connection import BlockingChannel

from ..config import DEFAULT_CONTENT_TYPE, SamplerConfig
from .outcome import Outcome, classify

logger = logging.getLogger(__name__)

PERSISTENT_DELIVERY_MODE = 2
TRANSIENT_DELIVERY_MODE = 1


class PublishOperation:
    """
    Publishes one payload `iterations` times per sample, optionally inside a
    transaction. The channel must already be in tx mode when `use_tx` is set.
    """

    def __init__(self, config: SamplerConfig) -> None:
        self.config = config

    def build_properties(self) -> pika.BasicProperties:
        publish = self.config.publish
        return pika.BasicProperties(
            content_type=publish.content_type or DEFAULT_CONTENT_TYPE,
            delivery_mode=PERSISTENT_DELIVERY_MODE if publish.persistent else TRANSIENT_DELIVERY_MODE,
            priority=0,
            correlation_id=publish.correlation_id,
            reply_to=publish.reply_to_queue,
            type=publish.message_type,
            message_id=publish.message_id,
            headers=dict(publish.headers) if publish.headers else None,
        )

    def publish(self, channel: BlockingChannel, payload: bytes) -> Outcome:
        exchange = self.config.exchange.name
        routing_key = self.config.message_routing_key

        try:
            properties = self.build_properties()
            for _ in range(self.config.iterations):
                channel.basic_publish(
                    exchange=exchange,
                    routing_key=routing_key,
                    body=payload,
                    properties=properties,
                )
            if self.config.use_tx:
                channel.tx_commit()
        except Exception as e:
            logger.debug(f"Publish to '{exchange}' with key '{routing_key}' failed: {e!r}")
            return classify(e)

        return Outcome.success(payload=payload)
