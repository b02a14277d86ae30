import logging
from typing import Callable, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel

from ..config import SamplerConfig
from .channel import ChannelProvisioner, ChannelSetup
from .connection import ConnectionManager

logger = logging.getLogger(__name__)


class AmqpSession:
    """
    The connection and channel owned by exactly one sampler instance.
    Never shared across samplers or threads.
    """

    def __init__(
        self,
        config: SamplerConfig,
        connection_factory: Callable[..., pika.BlockingConnection] = pika.BlockingConnection,
        setup: Optional[ChannelSetup] = None,
    ) -> None:
        self.config = config
        self.connections = ConnectionManager(config, connection_factory)
        self.channels = ChannelProvisioner(config, self.connections, setup=setup)

    @property
    def closed(self) -> bool:
        return self.connections.closed

    def ensure_channel(self) -> BlockingChannel:
        return self.channels.ensure_channel()

    def purge_queue_quietly(self) -> bool:
        """Purge the configured queue; failures are logged, never raised."""
        try:
            return self.channels.purge_queue()
        except Exception as e:
            logger.error(f"Failed to purge queue {self.config.queue.name}: {e!r}")
            return False

    def close(self) -> None:
        """Close channel then connection. The session cannot be reopened."""
        self.channels.close()
        self.connections.close()
