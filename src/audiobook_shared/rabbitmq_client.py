"""RabbitMQ connection manager with topology setup and capped reconnection."""

import logging
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional

import pika
from pika.exceptions import (
    AMQPConnectionError,
    ChannelClosed,
    ChannelClosedByBroker,
    ChannelWrongStateError,
)
from prometheus_client import Counter

from .config import Config
from .exceptions import BrokerConnectionError, ChannelUnavailableError, TopologyError
from .messages import QueueStats
from .rabbitmq_config import STATS_QUEUES, build_topology, transcode_queue_name
from .reconnect import ReconnectPolicy, RetryScheduler
from .topology import TopologyProvisioner

logger = logging.getLogger(__name__)

RECONNECT_ATTEMPTS = Counter('rabbitmq_reconnect_attempts_total', 'Scheduled RabbitMQ reconnection attempts')

# Errors raised by pika's blocking adapter once the connection or channel is gone
CONNECTION_LOSS_ERRORS = (AMQPConnectionError, ChannelClosed, ChannelWrongStateError)


class ConnectionState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'


class RabbitMQClient:
    """Owns the single broker connection and channel of a process."""

    def __init__(
        self,
        config: Optional[Config] = None,
        connection_factory: Optional[Callable] = None,
        scheduler=None,
        policy: Optional[ReconnectPolicy] = None,
        provisioner: Optional[TopologyProvisioner] = None
    ):
        self.config = config or Config()
        self.url = self.config.RABBITMQ_URL
        self.queue_prefix = self.config.RABBITMQ_QUEUE_PREFIX
        self.heartbeat = self.config.RABBITMQ_HEARTBEAT
        self.connection_timeout = self.config.RABBITMQ_CONNECTION_TIMEOUT
        self.connection_factory = connection_factory or pika.BlockingConnection
        self.scheduler = scheduler or RetryScheduler()
        self.policy = policy or ReconnectPolicy(
            base_delay_ms=self.config.RECONNECT_DELAY_MS,
            max_attempts=self.config.MAX_RECONNECT_ATTEMPTS
        )
        self.provisioner = provisioner or TopologyProvisioner(build_topology(self.queue_prefix))

        self.connection = None
        self.channel = None
        self.state = ConnectionState.DISCONNECTED
        self.is_connecting = False
        self.is_blocked = False
        self.reconnect_attempts = 0

        self._lock = Lock()
        self._pending_retry = None
        self._loss_listeners: List[Callable] = []

    def _create_connection(self):
        params = pika.URLParameters(self.url)
        params.heartbeat = self.heartbeat
        params.socket_timeout = self.connection_timeout
        return self.connection_factory(params)

    def _open_channel(self, connection):
        """Open a channel on ``connection`` with prefetch set to 1."""
        channel = connection.channel()
        # One unacknowledged delivery per consumer
        channel.basic_qos(prefetch_count=1)
        return channel

    def connect(self) -> None:
        """Establish connection and channel, then set up exchanges and queues.

        Returns immediately when already connected or while another connect
        is in flight. The connection and channel become visible to other
        callers only once the topology is in place. A failure schedules a
        reconnect and is re-raised.
        """
        with self._lock:
            if self.connection is not None and self.channel is not None:
                return
            if self.is_connecting:
                return
            self.is_connecting = True
            self.state = ConnectionState.CONNECTING

        connection = None
        try:
            logger.info("Connecting to RabbitMQ...")
            connection = self._create_connection()
            connection.add_on_connection_blocked_callback(self._on_connection_blocked)
            connection.add_on_connection_unblocked_callback(self._on_connection_unblocked)
            channel = self._open_channel(connection)

            channel = self.provisioner.provision(
                channel, reopen_channel=lambda: self._open_channel(connection)
            )
        except Exception as e:
            self.is_connecting = False
            self._close_quietly(connection)
            self._handle_connection_error(e)
            if isinstance(e, AMQPConnectionError):
                raise BrokerConnectionError(f"Failed to connect to RabbitMQ: {e}") from e
            raise

        self.connection = connection
        self.channel = channel
        self.reconnect_attempts = 0
        self.state = ConnectionState.CONNECTED
        self.is_connecting = False
        logger.info("Connected to RabbitMQ successfully")

    def is_connected(self) -> bool:
        return bool(
            self.connection is not None
            and self.channel is not None
            and self.connection.is_open
            and self.channel.is_open
        )

    def require_channel(self):
        if self.channel is None:
            raise ChannelUnavailableError("Channel not available")
        return self.channel

    def add_loss_listener(self, listener: Callable) -> None:
        """Register a callable invoked with the error whenever the channel is lost."""
        self._loss_listeners.append(listener)

    def handle_connection_lost(self, error: Optional[Exception] = None) -> None:
        """Report a dropped connection or closed channel seen by a caller."""
        if self.connection is None and self.channel is None:
            # Already being handled
            return
        logger.warning(f"RabbitMQ connection lost: {error}")
        self._handle_connection_error(error)

    def _handle_connection_error(self, error: Optional[Exception]) -> None:
        self._discard_connection()
        self.state = ConnectionState.DISCONNECTED
        self._notify_loss(error)

        if self.policy.exhausted(self.reconnect_attempts):
            logger.error(
                f"Max reconnection attempts ({self.policy.max_attempts}) reached. "
                "Stopping reconnection attempts."
            )
            return

        self.reconnect_attempts += 1
        delay_ms = self.policy.delay_for(self.reconnect_attempts)
        logger.info(
            f"Attempting to reconnect to RabbitMQ in {delay_ms}ms "
            f"(attempt {self.reconnect_attempts}/{self.policy.max_attempts})"
        )
        RECONNECT_ATTEMPTS.inc()
        self._pending_retry = self.scheduler.call_later(delay_ms / 1000.0, self._retry_connect)

    def _retry_connect(self) -> None:
        self._pending_retry = None
        try:
            self.connect()
        except Exception as e:
            # The failed attempt has already scheduled the next one
            logger.warning(f"Reconnection attempt failed: {e}")

    def _discard_connection(self) -> None:
        connection = self.connection
        self.connection = None
        self.channel = None
        self.is_blocked = False
        self._close_quietly(connection)

    @staticmethod
    def _close_quietly(connection) -> None:
        if connection is not None and getattr(connection, 'is_open', False):
            try:
                connection.close()
            except Exception as e:
                logger.debug(f"Ignoring error while discarding connection: {e}")

    def _notify_loss(self, error: Optional[Exception]) -> None:
        for listener in list(self._loss_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"Connection loss listener failed: {e}")

    def _on_connection_blocked(self, connection, method) -> None:
        logger.warning("RabbitMQ connection blocked by broker flow control")
        self.is_blocked = True

    def _on_connection_unblocked(self, connection, method) -> None:
        logger.info("RabbitMQ connection unblocked")
        self.is_blocked = False

    def process_data_events(self, time_limit: float = 0) -> bool:
        """Run due reconnect attempts, then pump broker I/O: deliveries,
        heartbeats and flow-control frames.

        Returns False when there is no connection or it was lost.
        """
        self.scheduler.run_due()
        if self.connection is None:
            return False
        try:
            self.connection.process_data_events(time_limit=time_limit)
            return True
        except CONNECTION_LOSS_ERRORS as e:
            self.handle_connection_lost(e)
            return False

    def get_queue_stats(self) -> Dict[str, QueueStats]:
        """Message and consumer counts for each transcode queue."""
        channel = self.require_channel()
        stats = {}

        for queue in STATS_QUEUES:
            name = transcode_queue_name(self.queue_prefix, queue)
            try:
                result = channel.queue_declare(queue=name, passive=True)
                stats[queue] = QueueStats(
                    message_count=result.method.message_count,
                    consumer_count=result.method.consumer_count
                )
            except ChannelClosedByBroker as e:
                logger.warning(f"Error getting stats for queue {queue}: {e}")
                stats[queue] = QueueStats()
                # A failed passive declare closes the channel
                self._notify_loss(e)
                channel = self._open_channel(self.connection)
                self.channel = channel
            except CONNECTION_LOSS_ERRORS as e:
                logger.warning(f"Error getting stats for queue {queue}: {e}")
                stats[queue] = QueueStats()
                self.handle_connection_lost(e)
                break

        for queue in STATS_QUEUES:
            stats.setdefault(queue, QueueStats())
        return stats

    def close(self) -> None:
        """Close channel and connection, logging but never raising errors."""
        if self._pending_retry is not None:
            self._pending_retry.cancel()
            self._pending_retry = None

        if self.channel is not None:
            try:
                self.channel.close()
            except Exception as e:
                logger.warning(f"Error closing RabbitMQ channel: {e}")
            self.channel = None

        if self.connection is not None:
            try:
                self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing RabbitMQ connection: {e}")
            self.connection = None

        self.state = ConnectionState.DISCONNECTED
        self.is_blocked = False
        logger.info("RabbitMQ connection closed gracefully")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class RabbitMQFactory:
    """Process-wide access to one RabbitMQClient."""

    _client: Optional[RabbitMQClient] = None

    @classmethod
    def get_client(cls, config: Optional[Config] = None, **kwargs) -> RabbitMQClient:
        if cls._client is None:
            cls._client = RabbitMQClient(config, **kwargs)
        return cls._client

    @classmethod
    def initialize(cls, config: Optional[Config] = None, **kwargs) -> RabbitMQClient:
        client = cls.get_client(config, **kwargs)
        client.connect()
        return client

    @classmethod
    def shutdown(cls) -> None:
        if cls._client is not None:
            cls._client.close()
            cls._client = None
