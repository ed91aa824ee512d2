import os
import pika

EVENT_TYPES = ['report-requested']


class Config(object):
    # application environment (development/production)
    # NOTE: WEBAPP_ENV relaxes some of the security settings in development mode, hence the default is production
    WEBAPP_ENV = os.getenv('WEBAPP_ENV', 'production')
    assert WEBAPP_ENV in ['development', 'production']

    # celery configs
    CELERY_BROKER_URL = os.environ['CELERY_BROKER_URL']
    CELERY_RESULT_BACKEND = os.environ['CELERY_RESULT_BACKEND']

    # celery queues
    REPORT_CELERY_QUEUE = os.getenv('REPORT_CELERY_QUEUE', 'report')

    # application database - MongoDB (MongoEngine)
    MONGODB_URI = os.environ['MONGODB_URI']
    MONGODB_DB = os.getenv('MONGODB_DB', 'reporting')
    # pymongo-compatible client class, None means pymongo.MongoClient
    MONGODB_CLIENT_CLASS = None

    # integration event bus: 'rabbitmq' or 'redis'
    EVENT_BUS_BACKEND = os.getenv('EVENT_BUS_BACKEND', 'rabbitmq')
    assert EVENT_BUS_BACKEND in ['rabbitmq', 'redis']
    EVENT_BUS_EXCHANGE = 'events'

    # RabbitMQ (pika)
    RABBITMQ_PARAMS = pika.ConnectionParameters(
        host=os.getenv('RABBITMQ_HOST', 'localhost'),
        credentials=pika.PlainCredentials(
            username=os.environ['RABBITMQ_USERNAME'],
            password=os.environ['RABBITMQ_PASSWORD']
        ) if os.environ.get('RABBITMQ_USERNAME', None) else pika.ConnectionParameters._DEFAULT
    )

    # Redis pub/sub
    REDIS_EVENTS_URL = os.getenv('REDIS_EVENTS_URL', 'redis://localhost:6379/0')
    REDIS_EVENTS_CHANNEL = 'events:event'

    # other security configs
    CORS_HEADERS = 'Content-Type'

    # ---------------------------------------------------------

    # private helper members - should not be used outside of Config object
    __DEV = WEBAPP_ENV == 'development'

    # API Docs for DEV environment (Swagger)
    SWAGGER_API_HOST = os.getenv('SWAGGER_API_HOST', 'localhost:5000')
    SWAGGER_BASE_PREFIX = "/docs"
    SWAGGER = {
        "swagger": "2.0",
        "openapi": "3.0.2",
        'uiversion': 3,
        "info": {
            "title": "Reporting API",
            "description": "API for asynchronous report generation",
            "version": "0.1.0"
        },
        "static_url_path": "/flasgger_static",
        "url_prefix": SWAGGER_BASE_PREFIX,
        "swagger_ui": True if __DEV else False,
        "specs_route": "/",
        "host": SWAGGER_API_HOST,
        "schemes": ['http'] if SWAGGER_API_HOST.split(':')[0] == 'localhost' else ['https'],
    }
