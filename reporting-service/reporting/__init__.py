from datetime import datetime, date
import logging

from flask import Flask, make_response, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from flask_redis import FlaskRedis
from flask_marshmallow import Marshmallow
from jsonschema import ValidationError
from flasgger import Swagger
from apispec import APISpec
from apispec.ext.marshmallow import MarshmallowPlugin
import mongoengine
from redis import Redis
from celery import Celery
from flask_log_request_id import RequestID, current_request_id

from config import Config


logger = logging.getLogger(__name__)

# Redis client for events
# NOTE: FlaskRedis exposes a Redis client instance, but it is not a subclass of Redis
#       FlaskRedis | Redis typing is used to let the IDE provide autocompletion for Redis methods
redis_client: FlaskRedis | Redis = FlaskRedis(decode_responses=True, config_prefix='REDIS_EVENTS')

# using marshmallow to marshall JSON responses
ma = Marshmallow()

# Swagger for OpenAPI documentation
swagger = Swagger()

api_spec = APISpec(
    title="Reporting API",
    version="0.1.0",
    openapi_version="3.0.2",
    plugins=[MarshmallowPlugin()],
)

celery = Celery(
    __name__,
    backend=Config.CELERY_RESULT_BACKEND,
    broker=Config.CELERY_BROKER_URL,
)
celery.autodiscover_tasks(packages=['reporting.tasks'])

# configuring queues for different tasks
celery_conf = {
    'task_routes': {
        'reporting.tasks.report.apply_report_update': {'queue': Config.REPORT_CELERY_QUEUE},
    },
    'task_time_limit': 5 * 60  # seconds
}


# after_request handler to append the Application-Request-Id header
def append_application_headers(response):
    response.headers['Application-Request-Id'] = current_request_id()
    return response


# handle jsonschema validation error
def handle_bad_request(error):
    if isinstance(error.description, ValidationError):
        logger.info(f'Rejected {request.endpoint} body: {error.description.message}')
        return make_response(
            jsonify({
                'msg': 'Bad Object',
                'schema_error': error.description.message
            }),
            400
        )

    # handle other "Bad Request"-errors
    return error


class CustomJSONProvider(DefaultJSONProvider):
    @staticmethod
    def default(obj):
        # encode date/datetime objects to ISO format strings
        # MongoDB saves timestamps with millisecond precision, using timespec='milliseconds' for consistency
        if isinstance(obj, datetime):
            return obj.isoformat(timespec='milliseconds')
        if isinstance(obj, date):
            return obj.isoformat()
        return DefaultJSONProvider.default(obj)


def init_celery(app):
    celery.conf.update(**celery_conf)

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery


def init_db(app):
    connection_settings = {
        'host': app.config['MONGODB_URI'],
        'connect': False,
    }
    if app.config.get('MONGODB_CLIENT_CLASS'):
        connection_settings['mongo_client_class'] = app.config['MONGODB_CLIENT_CLASS']

    mongoengine.connect(app.config['MONGODB_DB'], **connection_settings)


def init_report_service(app, config_class=Config):
    from reporting.events import create_event_publisher
    from reporting.services import ReportService
    from reporting.store import ReportStore

    publisher = create_event_publisher(config_class, redis_client)
    app.extensions['report_service'] = ReportService(ReportStore(), publisher)
    return app.extensions['report_service']


def setup_rabbitmq(app):
    """ Declare the events exchange and queues, if events go through RabbitMQ """
    from pika.exceptions import AMQPError
    from reporting.events import RabbitMQEventPublisher

    publisher = app.extensions['report_service'].publisher
    if not isinstance(publisher, RabbitMQEventPublisher):
        return False

    try:
        publisher.setup()
    except AMQPError:
        # the app still serves requests, report creation degrades until the broker is back
        logger.exception('RabbitMQ unavailable at startup, events exchange and queues not declared')
        return False
    return True


def create_base_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # configure a custom JSON encoder to handle datetime objects
    app.json_provider_class = CustomJSONProvider
    app.json = app.json_provider_class(app)

    if config_class.WEBAPP_ENV == 'development':
        CORS(app, resources={r"/*": {"origins": ["http://localhost:3000"], }}, supports_credentials=True)

    init_db(app)
    redis_client.init_app(app)
    ma.init_app(app)

    request_id = RequestID(app)  # NOTE: this line is a workaround for an unfixed bug in init_app() that breaks
    # request_id.init_app(app)   #       lazy initialization pattern (see issue #50 on project GitHub)

    app.after_request(append_application_headers)
    app.register_error_handler(400, handle_bad_request)

    return app


def create_app(config_class=Config):
    app = create_base_app(config_class)

    init_celery(app)
    init_report_service(app, config_class)

    # dev tools for development environment (API specs, schema routes and Swagger Web UI)
    if app.config['WEBAPP_ENV'] == 'development':
        swagger.init_app(app)

        from reporting.devtools import bp as devtools_blueprint
        app.register_blueprint(devtools_blueprint, url_prefix=config_class.SWAGGER_BASE_PREFIX)

    from reporting import domains

    app.register_blueprint(domains.report_blueprint, url_prefix='/')

    return app
