"""Declares the exchanges, queues and bindings used by the audiobook services."""

import logging
from typing import Callable, Optional

from pika.exceptions import AMQPChannelError, AMQPConnectionError, ChannelClosedByBroker

from .exceptions import TopologyError
from .rabbitmq_config import Topology

logger = logging.getLogger(__name__)


class TopologyProvisioner:
    """Provision broker topology on an open channel.

    Declarations are idempotent on the broker side. The one destructive step
    is the removal of known transcode queues before they are redeclared, so a
    deployment that changes queue arguments does not trip over the old ones.
    """

    def __init__(self, topology: Topology):
        self.topology = topology

    def provision(self, channel, reopen_channel: Optional[Callable] = None):
        """Declare the full topology. Returns the channel it finished on.

        pika closes a channel when the broker rejects a method, so a failed
        delete needs ``reopen_channel`` to get a usable channel back.
        """
        channel = self._delete_legacy_queues(channel, reopen_channel)

        try:
            for exchange in self.topology.exchanges:
                channel.exchange_declare(
                    exchange=exchange.name,
                    exchange_type=exchange.type,
                    durable=exchange.durable,
                    auto_delete=exchange.auto_delete
                )

                queues = [q for q in self.topology.queues if q.exchange == exchange.name]
                for queue in queues:
                    channel.queue_declare(
                        queue=queue.name,
                        durable=queue.durable,
                        exclusive=queue.exclusive,
                        auto_delete=queue.auto_delete,
                        arguments=queue.arguments
                    )

                for queue in queues:
                    channel.queue_bind(
                        queue=queue.name,
                        exchange=exchange.name,
                        routing_key=queue.routing_key
                    )
                logger.info(f"Exchange {exchange.name} ({exchange.type}) setup completed")
        except AMQPChannelError as e:
            raise TopologyError(f"Failed to declare topology: {e}") from e

        logger.info("RabbitMQ exchanges and queues setup completed")
        return channel

    def _delete_legacy_queues(self, channel, reopen_channel):
        for queue in self.topology.legacy_queues:
            try:
                channel.queue_delete(queue=queue, if_empty=False)
                logger.info(f"Deleted existing queue: {queue}")
            except ChannelClosedByBroker as e:
                # Queue might not exist, which is fine
                logger.warning(f"Could not delete queue {queue}: {e}")
                if reopen_channel is None:
                    raise TopologyError(f"Channel closed while deleting {queue}") from e
                channel = reopen_channel()
            except AMQPConnectionError:
                raise
            except Exception as e:
                logger.warning(f"Could not delete queue {queue}: {e}")
        return channel
