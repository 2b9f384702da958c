"""
User creation message consumer
Subscribes to the users.created queue with manual acknowledgment
"""
import logging
from enum import Enum
from typing import Callable

from prometheus_client import Counter

from audiobook_shared.exceptions import HandlerError, MessageValidationError
from audiobook_shared.messages import UserCreationMessage, decode_json
from audiobook_shared.rabbitmq_client import RabbitMQClient
from audiobook_shared.rabbitmq_config import users_created_queue_name

logger = logging.getLogger(__name__)

USER_MESSAGES = Counter('user_creation_messages_total', 'User creation messages consumed', ['outcome'])


class SubscriptionState(Enum):
    UNSUBSCRIBED = 'unsubscribed'
    SUBSCRIBED = 'subscribed'


class AckAlways:
    """Acknowledge every delivery, whatever happened to it.

    There is no retry and no dead-letter queue: a message whose body cannot
    be decoded or whose handler raised is logged and dropped.
    """

    name = 'ack_always'

    def on_success(self, channel, delivery_tag, message: UserCreationMessage) -> None:
        channel.basic_ack(delivery_tag=delivery_tag)
        USER_MESSAGES.labels(outcome='processed').inc()
        logger.info(f"Processed user creation message for userId: {message.user_id}")

    def on_failure(self, channel, delivery_tag, error: Exception) -> None:
        outcome = 'invalid' if isinstance(error, MessageValidationError) else 'handler_error'
        logger.error(f"Error processing user creation message: {error}")
        channel.basic_ack(delivery_tag=delivery_tag)
        USER_MESSAGES.labels(outcome=outcome).inc()


class MessageConsumer:
    """Consumes user creation events from ``{prefix}.users.created``."""

    def __init__(self, client: RabbitMQClient, ack_strategy=None):
        self.client = client
        self.ack_strategy = ack_strategy or AckAlways()
        self.queue_name = users_created_queue_name(client.queue_prefix)
        self.consumer_tag = self.queue_name
        self.state = SubscriptionState.UNSUBSCRIBED
        self._channel = None
        client.add_loss_listener(self._on_channel_lost)

    @property
    def is_subscribed(self) -> bool:
        return self.state == SubscriptionState.SUBSCRIBED

    def consume(self, handler: Callable[[UserCreationMessage], None]) -> None:
        """Start delivering messages to ``handler``.

        Raises ChannelUnavailableError when no channel is open.
        """
        channel = self.client.require_channel()

        def on_message(ch, method, properties, body):
            self._dispatch(ch, method.delivery_tag, body, handler)

        channel.basic_consume(
            queue=self.queue_name,
            on_message_callback=on_message,
            auto_ack=False,
            consumer_tag=self.consumer_tag
        )
        self._channel = channel
        self.state = SubscriptionState.SUBSCRIBED
        logger.info(f"Started consuming user creation messages from queue: {self.queue_name}")

    def _dispatch(self, channel, delivery_tag, body, handler) -> None:
        try:
            message = UserCreationMessage.from_dict(decode_json(body))
            logger.info(f"Received user creation message for userId: {message.user_id}")
        except MessageValidationError as e:
            self.ack_strategy.on_failure(channel, delivery_tag, e)
            return

        try:
            handler(message)
        except Exception as e:
            error = HandlerError(f"Handler failed for userId {message.user_id}: {e}")
            self.ack_strategy.on_failure(channel, delivery_tag, error)
            return

        self.ack_strategy.on_success(channel, delivery_tag, message)

    def stop_consuming(self) -> None:
        """Cancel this subscription only; the channel stays open."""
        channel = self._channel
        if not self.is_subscribed or channel is None:
            return

        try:
            channel.basic_cancel(self.consumer_tag)
            logger.info(f"Stopped consuming user creation messages from queue: {self.queue_name}")
        except Exception as e:
            logger.warning(f"Error stopping user creation message consumer: {e}")
        finally:
            self._channel = None
            self.state = SubscriptionState.UNSUBSCRIBED

    def _on_channel_lost(self, error) -> None:
        if self.is_subscribed:
            logger.warning(f"User creation subscription lost: {error}")
        self._channel = None
        self.state = SubscriptionState.UNSUBSCRIBED
