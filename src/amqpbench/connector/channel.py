import logging
from typing import Callable, Optional

from pika import exceptions as pika_exceptions
from pika.adapters.blocking_connection import BlockingChannel

from .. import exceptions
from ..config import SamplerConfig
from .connection import ConnectionManager

logger = logging.getLogger(__name__)

ChannelSetup = Callable[[BlockingChannel], None]


class ChannelProvisioner:
    """
    Opens the sampler's channel on demand and declares its topology.

    Topology is declared once per channel lifetime: an open channel is handed
    back untouched, a closed one is replaced and the topology declared again.
    """

    def __init__(
        self,
        config: SamplerConfig,
        connection_manager: ConnectionManager,
        setup: Optional[ChannelSetup] = None,
    ) -> None:
        self.config = config
        self.connection_manager = connection_manager
        self._setup = setup
        self._channel: Optional[BlockingChannel] = None
        self._provisioned = False
        self._closed = False

    @property
    def channel(self) -> Optional[BlockingChannel]:
        return self._channel

    @property
    def is_open(self) -> bool:
        return self._provisioned and self._channel is not None and self._channel.is_open

    # =====================================================================
    # ENSURE CHANNEL
    # =====================================================================
    def ensure_channel(self) -> BlockingChannel:
        if self._closed:
            raise exceptions.SamplerClosedError()

        if self.is_open:
            return self._channel

        if self._channel is not None:
            logger.warning("Channel is closed; reopening and redeclaring topology")
            self._release_channel()

        self._channel = self.connection_manager.open_channel()
        try:
            self._declare_queue()
            self._declare_exchange()
            if self._setup:
                self._setup(self._channel)
        except pika_exceptions.ChannelClosed as e:
            self._release_channel()
            raise exceptions.ChannelProtocolError(
                e.reply_text or "Channel closed during provisioning",
                cause=e,
                reply_code=e.reply_code,
            ) from e
        except Exception:
            self._release_channel()
            raise

        if self._closed:
            self._release_channel()
            raise exceptions.SamplerClosedError()

        self._provisioned = True
        return self._channel

    # =====================================================================
    # TOPOLOGY
    # =====================================================================
    def _declare_queue(self) -> None:
        queue = self.config.queue
        if not queue.name:
            return

        if queue.redeclare:
            self._delete_quietly(lambda ch: ch.queue_delete(queue=queue.name), f"queue {queue.name}")

        logger.info(f"Declaring queue {queue.name}")
        self._channel.queue_declare(
            queue=queue.name,
            durable=queue.durable,
            exclusive=queue.exclusive,
            auto_delete=queue.auto_delete,
            arguments=queue.arguments(),
        )

    def _declare_exchange(self) -> None:
        exchange = self.config.exchange
        if not exchange.name:
            return

        if exchange.redeclare:
            self._delete_quietly(lambda ch: ch.exchange_delete(exchange=exchange.name), f"exchange {exchange.name}")

        logger.info(f"Declaring {exchange.type} exchange {exchange.name}")
        self._channel.exchange_declare(
            exchange=exchange.name,
            exchange_type=exchange.type,
            durable=exchange.durable,
            auto_delete=exchange.auto_delete,
        )

        queue_name = self.config.queue.name
        if queue_name:
            logger.info(f"Binding queue {queue_name} to {exchange.name} with key '{self.config.routing_key}'")
            self._channel.queue_bind(
                queue=queue_name,
                exchange=exchange.name,
                routing_key=self.config.routing_key,
            )

    def _delete_quietly(self, delete: Callable[[BlockingChannel], None], what: str) -> None:
        """
        Attempt a delete and ignore channel-level failures. A failed delete
        closes the channel, in which case a fresh one takes its place.
        """
        logger.info(f"Deleting {what}")
        try:
            delete(self._channel)
        except pika_exceptions.AMQPChannelError as e:
            logger.debug(f"Ignoring failed delete of {what}: {e!r}")

        if not self._channel.is_open:
            self._channel = self.connection_manager.open_channel()

    # =====================================================================
    # PURGE / CLOSE
    # =====================================================================
    def purge_queue(self) -> bool:
        """
        Purge the configured queue. Errors propagate.

        A channel closed by an earlier channel-level error is replaced first
        when the connection is still up. Returns False when no channel was
        ever opened or no queue is configured.
        """
        queue_name = self.config.queue.name
        if self._channel is None or not queue_name:
            return False

        if not self._channel.is_open and self.connection_manager.is_open:
            logger.info("Channel is closed; opening a new one for the purge")
            self._release_channel()
            self._channel = self.connection_manager.open_channel()

        logger.info(f"Purging queue {queue_name}")
        self._channel.queue_purge(queue=queue_name)
        return True

    def close(self) -> None:
        """Close the channel for good; later `ensure_channel` calls raise."""
        self._closed = True
        self._release_channel()

    def _release_channel(self) -> None:
        channel = self._channel
        self._channel = None
        self._provisioned = False
        if channel is None:
            return

        try:
            if channel.is_open:
                channel.close()
        except Exception as e:
            logger.error(f"Failed to close channel: {e!r}")
