import logging
import threading
import uuid
from datetime import datetime
from typing import Dict

import orjson
import pika
from pika.exceptions import AMQPError
from redis import Redis
from redis.exceptions import RedisError

from reporting.errors import PublishError
from config import EVENT_TYPES

logger = logging.getLogger(__name__)


class IntegrationEvent:
    """An asynchronous notification for out-of-process subscribers"""

    type: str = None

    def __init__(self, data: Dict):
        if self.type not in EVENT_TYPES:
            raise ValueError(f'Invalid event type: {self.type}')
        # consumers deduplicate redeliveries on the event id
        self.id = str(uuid.uuid4())
        self.timestamp = datetime.utcnow()
        self.data = data

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'type': self.type,
            'data': self.data
        }

    def serialize(self) -> bytes:
        return orjson.dumps(self.to_dict())


class ReportRequestedEvent(IntegrationEvent):
    type = 'report-requested'

    def __init__(self, report_id: str):
        super().__init__({'report_id': report_id})
        self.report_id = report_id


class IntegrationEventPublisher:
    """
    Fire-and-forget publication of integration events.

    `publish` returns once the bus accepted the message; it never waits for a
    subscriber and gives no delivery guarantee. Transport failures raise PublishError.
    """

    def publish(self, event: IntegrationEvent) -> None:
        raise NotImplementedError


class RedisEventPublisher(IntegrationEventPublisher):
    """Publish events to Redis pub/sub"""

    def __init__(self, redis_client: Redis, channel: str = 'events:event'):
        self.redis_client = redis_client
        self.channel = channel

    def publish(self, event: IntegrationEvent) -> None:
        try:
            self.redis_client.publish(self.channel, event.serialize())
        except RedisError as e:
            logger.error(f'Failed to publish Redis event {event.type}[{event.id}]: {str(e)}')
            raise PublishError(f'Failed to publish {event.type} event') from e

        logger.info(f'Published Redis event: {event.type}[{event.id}]')


class RabbitMQEventPublisher(IntegrationEventPublisher):
    """Publish events to a RabbitMQ topic exchange, routed by event type"""

    def __init__(self, connection_params: pika.ConnectionParameters, exchange: str = 'events'):
        self.connection_params = connection_params
        self.exchange = exchange
        self._connection = None
        self._declared = False
        # pika BlockingConnection is not thread-safe
        self._lock = threading.Lock()

    def _channel(self):
        if self._connection is None or self._connection.is_closed:
            self._connection = pika.BlockingConnection(self.connection_params)
        return self._connection.channel()

    def _reset(self):
        try:
            if self._connection is not None and self._connection.is_open:
                self._connection.close()
        except AMQPError:
            logger.warning('Failed to close RabbitMQ connection', exc_info=True)
        self._connection = None

    def _declare(self, channel):
        channel.exchange_declare(exchange=self.exchange, exchange_type='topic', durable=True)

        for event_type in EVENT_TYPES:
            queue_name = f'{self.exchange}.{event_type}'
            channel.queue_declare(queue=queue_name, durable=True)
            channel.queue_bind(exchange=self.exchange, queue=queue_name, routing_key=event_type)

        self._declared = True

    def _basic_publish(self, event: IntegrationEvent):
        channel = self._channel()
        try:
            # startup declaration may have failed while the broker was down
            if not self._declared:
                self._declare(channel)
            channel.basic_publish(
                exchange=self.exchange,
                routing_key=event.type,
                body=event.serialize(),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # make message persistent
                    content_type='application/json',
                    message_id=event.id
                )
            )
        finally:
            if channel.is_open:
                channel.close()

    def publish(self, event: IntegrationEvent) -> None:
        with self._lock:
            reused = self._connection is not None and not self._connection.is_closed
            try:
                self._basic_publish(event)

            except AMQPError as e:
                self._reset()
                if not reused:
                    logger.error(f'Failed to publish RabbitMQ event {event.type}[{event.id}]: {str(e)}')
                    raise PublishError(f'Failed to publish {event.type} event') from e

                # the broker may have dropped an idle connection: retry once on a fresh one
                logger.warning(f'RabbitMQ connection lost ({str(e)}), reconnecting')
                try:
                    self._basic_publish(event)
                except AMQPError as retry_error:
                    logger.error(f'Failed to publish RabbitMQ event {event.type}[{event.id}]: {str(retry_error)}')
                    self._reset()
                    raise PublishError(f'Failed to publish {event.type} event') from retry_error

        logger.info(f'Published RabbitMQ event: {event.type}[{event.id}]')

    def setup(self):
        """ Declare the events exchange and one durable queue per event type """
        with self._lock:
            try:
                channel = self._channel()
                self._declare(channel)
                channel.close()
                logger.info('RabbitMQ infrastructure setup completed')

            except AMQPError as e:
                logger.error(f'Failed to setup RabbitMQ infrastructure: {str(e)}')
                self._reset()
                raise


def create_event_publisher(config, redis_client: Redis = None) -> IntegrationEventPublisher:
    if config.EVENT_BUS_BACKEND == 'redis':
        return RedisEventPublisher(redis_client, channel=config.REDIS_EVENTS_CHANNEL)
    return RabbitMQEventPublisher(config.RABBITMQ_PARAMS, exchange=config.EVENT_BUS_EXCHANGE)
