import logging
import ssl
from typing import Callable, List, Optional

import pika
from pika import exceptions as pika_exceptions
from pika.adapters.blocking_connection import BlockingChannel

from .. import exceptions
from ..config import SamplerConfig

logger = logging.getLogger(__name__)

# Detects silently dead peers between samples.
DEFAULT_HEARTBEAT = 1


class ConnectionManager:
    """
    Owns the single broker connection of one sampler instance.

    The connection is created lazily on first use and reused while it stays
    open. Hosts are tried in the order they were configured. Once `close()`
    has run the manager never connects again.
    """

    def __init__(
        self,
        config: SamplerConfig,
        connection_factory: Callable[..., pika.BlockingConnection] = pika.BlockingConnection,
    ) -> None:
        self.config = config
        self._connection_factory = connection_factory
        self._connection: Optional[pika.BlockingConnection] = None
        self._closed = False

    @property
    def connection(self) -> Optional[pika.BlockingConnection]:
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._connection.is_open

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------- Connection ----------

    def ensure_connection(self) -> pika.BlockingConnection:
        """
        Return the open connection, connecting first if needed.

        Raises BrokerConnectionError when no address accepts the connection,
        TLSSetupError when the TLS context cannot be built and
        SamplerClosedError after `close()`. Never retries.
        """
        if self._closed:
            raise exceptions.SamplerClosedError()

        if self.is_open:
            return self._connection

        hosts = self.config.hosts
        if not hosts:
            raise exceptions.BrokerConnectionError("No broker host configured.")

        parameters = self.build_parameters()
        logger.info(
            f"Connecting to {', '.join(hosts)} on port {self.config.port} "
            f"(vhost {self.config.virtual_host}, timeout {self.config.connection_timeout} ms)"
        )
        try:
            connection = self._connection_factory(parameters)
        except (pika_exceptions.AMQPConnectionError, OSError) as e:
            self._connection = None
            raise exceptions.BrokerConnectionError(
                f"Could not connect to {','.join(hosts)}:{self.config.port}: {e!r}",
                cause=e,
            ) from e

        self._connection = connection
        # close() may have run on another thread while the handshake was in flight.
        if self._closed:
            self._connection = None
            self._close_connection(connection)
            raise exceptions.SamplerClosedError()

        return connection

    def open_channel(self) -> BlockingChannel:
        channel = self.ensure_connection().channel()
        logger.debug(f"Opened channel {getattr(channel, 'channel_number', '?')}")
        return channel

    def close(self) -> None:
        """
        Close the connection if there is one and refuse to reconnect. Safe to
        call repeatedly; close failures are logged and never raised.
        """
        self._closed = True
        connection, self._connection = self._connection, None
        if connection is not None:
            self._close_connection(connection)

    def _close_connection(self, connection: pika.BlockingConnection) -> None:
        try:
            if connection.is_open:
                connection.close()
                logger.info("Connection closed")
        except Exception as e:
            logger.error(f"Failed to close connection: {e!r}")

    # ---------- Parameters ----------

    def build_parameters(self) -> List[pika.ConnectionParameters]:
        """One parameter set per configured host, in failover order."""
        credentials = pika.PlainCredentials(self.config.username, self.config.password)
        context = self._build_ssl_context() if self.config.use_ssl else None

        return [
            pika.ConnectionParameters(
                host=host,
                port=self.config.port,
                virtual_host=self.config.virtual_host,
                credentials=credentials,
                heartbeat=DEFAULT_HEARTBEAT,
                connection_attempts=1,
                socket_timeout=self.config.connection_timeout_seconds,
                stack_timeout=self.config.connection_timeout_seconds,
                ssl_options=pika.SSLOptions(context, host) if context else None,
            )
            for host in self.config.hosts
        ]

    def _build_ssl_context(self) -> ssl.SSLContext:
        try:
            if self.config.ssl_ca_certs:
                context = ssl.create_default_context(cafile=self.config.ssl_ca_certs)
            else:
                # No CA bundle: accept whatever certificate the broker presents.
                context = ssl.create_default_context()
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
        except (ssl.SSLError, OSError, ValueError) as e:
            raise exceptions.TLSSetupError(f"Failed to set up TLS: {e}", cause=e) from e

        return context
