from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import orjson
import pytest
from pika.exceptions import AMQPConnectionError, StreamLostError
from redis.exceptions import ConnectionError as RedisConnectionError

from reporting import setup_rabbitmq
from reporting.errors import PublishError
from reporting.events import (
    IntegrationEvent, ReportRequestedEvent, RabbitMQEventPublisher, RedisEventPublisher, create_event_publisher
)
from reporting.services import ReportService
from reporting.store import ReportStore

REPORT_ID = '0f8fad5b-d9cb-469f-a165-70867728950e'


def test_report_requested_event_payload():
    event = ReportRequestedEvent(REPORT_ID)
    payload = orjson.loads(event.serialize())

    assert payload['type'] == 'report-requested'
    assert payload['data'] == {'report_id': REPORT_ID}
    assert payload['id'] == event.id
    assert 'timestamp' in payload


def test_events_have_distinct_ids():
    assert ReportRequestedEvent(REPORT_ID).id != ReportRequestedEvent(REPORT_ID).id


def test_unknown_event_type():
    class UnknownEvent(IntegrationEvent):
        type = 'unknown-event'

    with pytest.raises(ValueError):
        UnknownEvent({})


def test_redis_event_publishing():
    """Test Redis pub/sub event publishing"""
    mock_redis = MagicMock()
    publisher = RedisEventPublisher(mock_redis, channel='events:event')

    publisher.publish(ReportRequestedEvent(REPORT_ID))

    mock_redis.publish.assert_called_once()
    channel, message = mock_redis.publish.call_args[0]
    assert channel == 'events:event'
    assert b'report-requested' in message
    assert REPORT_ID.encode() in message


def test_redis_event_publishing_failure():
    mock_redis = MagicMock()
    mock_redis.publish.side_effect = RedisConnectionError('connection refused')
    publisher = RedisEventPublisher(mock_redis)

    with pytest.raises(PublishError):
        publisher.publish(ReportRequestedEvent(REPORT_ID))


def test_rabbitmq_event_publishing():
    """Test RabbitMQ event publishing"""
    mock_connection = MagicMock()
    mock_connection.is_closed = False
    mock_channel = mock_connection.channel.return_value

    with patch('reporting.events.pika.BlockingConnection', return_value=mock_connection) as mock_blocking:
        publisher = RabbitMQEventPublisher(MagicMock(), exchange='events')
        event = ReportRequestedEvent(REPORT_ID)
        publisher.publish(event)
        publisher.publish(ReportRequestedEvent(REPORT_ID))

    # the connection is reused across publications
    mock_blocking.assert_called_once()
    assert mock_channel.basic_publish.call_count == 2

    kwargs = mock_channel.basic_publish.call_args_list[0][1]
    assert kwargs['exchange'] == 'events'
    assert kwargs['routing_key'] == 'report-requested'
    assert kwargs['properties'].delivery_mode == 2
    assert kwargs['properties'].message_id == event.id
    assert REPORT_ID.encode() in kwargs['body']


def test_rabbitmq_event_publishing_failure_resets_connection():
    with patch('reporting.events.pika.BlockingConnection', side_effect=AMQPConnectionError('refused')):
        publisher = RabbitMQEventPublisher(MagicMock())
        with pytest.raises(PublishError):
            publisher.publish(ReportRequestedEvent(REPORT_ID))

    assert publisher._connection is None


def test_rabbitmq_event_publishing_reconnects_after_idle_connection_drop():
    # the broker dropped the idle connection but pika still reports it open
    stale_connection = MagicMock()
    stale_connection.is_closed = False
    healthy_connection = MagicMock()
    healthy_connection.is_closed = False

    with patch('reporting.events.pika.BlockingConnection', side_effect=[stale_connection, healthy_connection]):
        publisher = RabbitMQEventPublisher(MagicMock(), exchange='events')
        publisher.publish(ReportRequestedEvent(REPORT_ID))

        stale_connection.channel.side_effect = StreamLostError('Transport indicated EOF')
        publisher.publish(ReportRequestedEvent(REPORT_ID))

    healthy_connection.channel.return_value.basic_publish.assert_called_once()
    assert publisher._connection is healthy_connection


def test_rabbitmq_event_publishing_retries_only_once():
    stale_connection = MagicMock()
    stale_connection.is_closed = False

    with patch('reporting.events.pika.BlockingConnection',
               side_effect=[stale_connection, AMQPConnectionError('refused')]) as mock_blocking:
        publisher = RabbitMQEventPublisher(MagicMock())
        publisher.publish(ReportRequestedEvent(REPORT_ID))

        stale_connection.channel.side_effect = StreamLostError('Transport indicated EOF')
        with pytest.raises(PublishError):
            publisher.publish(ReportRequestedEvent(REPORT_ID))

    assert mock_blocking.call_count == 2
    assert publisher._connection is None


def test_rabbitmq_setup_declares_topology():
    mock_connection = MagicMock()
    mock_connection.is_closed = False
    mock_channel = mock_connection.channel.return_value

    with patch('reporting.events.pika.BlockingConnection', return_value=mock_connection):
        RabbitMQEventPublisher(MagicMock(), exchange='events').setup()

    mock_channel.exchange_declare.assert_called_once_with(exchange='events', exchange_type='topic', durable=True)
    mock_channel.queue_declare.assert_called_once_with(queue='events.report-requested', durable=True)
    mock_channel.queue_bind.assert_called_once_with(
        exchange='events', queue='events.report-requested', routing_key='report-requested'
    )


def test_create_event_publisher_backend():
    config = MagicMock(EVENT_BUS_BACKEND='redis', REDIS_EVENTS_CHANNEL='events:event')
    assert isinstance(create_event_publisher(config, MagicMock()), RedisEventPublisher)

    config = MagicMock(EVENT_BUS_BACKEND='rabbitmq', EVENT_BUS_EXCHANGE='events')
    assert isinstance(create_event_publisher(config), RabbitMQEventPublisher)


def test_rabbitmq_publishing_declares_topology_missed_at_startup():
    mock_connection = MagicMock()
    mock_connection.is_closed = False
    mock_channel = mock_connection.channel.return_value

    with patch('reporting.events.pika.BlockingConnection',
               side_effect=[AMQPConnectionError('refused'), mock_connection]):
        publisher = RabbitMQEventPublisher(MagicMock(), exchange='events')
        with pytest.raises(AMQPConnectionError):
            publisher.setup()

        publisher.publish(ReportRequestedEvent(REPORT_ID))
        publisher.publish(ReportRequestedEvent(REPORT_ID))

    mock_channel.exchange_declare.assert_called_once_with(exchange='events', exchange_type='topic', durable=True)
    assert mock_channel.basic_publish.call_count == 2


def test_setup_rabbitmq_broker_unavailable():
    publisher = RabbitMQEventPublisher(MagicMock())
    app = SimpleNamespace(extensions={'report_service': ReportService(ReportStore(), publisher)})

    with patch('reporting.events.pika.BlockingConnection', side_effect=AMQPConnectionError('refused')):
        # startup goes on, publications declare the topology once the broker is back
        assert setup_rabbitmq(app) is False

    assert publisher._connection is None
    assert publisher._declared is False


def test_setup_rabbitmq():
    mock_connection = MagicMock()
    mock_connection.is_closed = False
    publisher = RabbitMQEventPublisher(MagicMock())
    app = SimpleNamespace(extensions={'report_service': ReportService(ReportStore(), publisher)})

    with patch('reporting.events.pika.BlockingConnection', return_value=mock_connection):
        assert setup_rabbitmq(app) is True

    mock_connection.channel.return_value.exchange_declare.assert_called_once()


def test_setup_rabbitmq_redis_backend():
    publisher = RedisEventPublisher(MagicMock())
    app = SimpleNamespace(extensions={'report_service': ReportService(ReportStore(), publisher)})

    assert setup_rabbitmq(app) is False
