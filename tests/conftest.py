import os
import logging.config
from unittest.mock import MagicMock

import mongomock
import pytest


# add reporting-service to Python path for all tests
# NOTE: marking reporting-service as source root in the IDE also does the trick
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "reporting-service"))

# required settings, nothing is contacted: MongoDB is mocked and bus clients are patched
os.environ.setdefault('CELERY_BROKER_URL', 'memory://')
os.environ.setdefault('CELERY_RESULT_BACKEND', 'cache+memory://')
os.environ.setdefault('MONGODB_URI', 'mongodb://localhost')
os.environ.setdefault('WEBAPP_ENV', 'production')


from config import Config
from reporting import create_app, init_celery
from reporting.events import IntegrationEventPublisher
from reporting.models import Report, UndeliveredReportRequest
from reporting.services import ReportService
from reporting.store import ReportStore, init_mongo_indexes


# simplified logging config for tests (applies both to webapp and celery)
# NOTE: the webapp logging config uses filters that need a request context and a request id
logging.config.dictConfig({
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'webapp': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stdout'
        }
    },
    'loggers': {
        'reporting': {
            'level': 'INFO',
            'handlers': ['webapp'],
            'propagate': True
        }
    }
})


class TestConfig(Config):
    MONGODB_DB = 'reporting-test'
    MONGODB_CLIENT_CLASS = mongomock.MongoClient


@pytest.fixture(scope='session')
def flask_app():
    flask_app = create_app(TestConfig)

    with flask_app.app_context():
        init_mongo_indexes()
        yield flask_app


@pytest.fixture(scope='session')
def test_client(flask_app):
    # Create a test client using the Flask application configured for testing
    yield flask_app.test_client()


@pytest.fixture(scope='function')
def init_database(flask_app):
    Report.drop_collection()
    UndeliveredReportRequest.drop_collection()
    init_mongo_indexes()
    yield
    Report.drop_collection()
    UndeliveredReportRequest.drop_collection()


@pytest.fixture(scope='function')
def event_publisher():
    # fire-and-forget publisher that records what would have gone on the bus
    return MagicMock(spec=IntegrationEventPublisher)


@pytest.fixture(scope='function')
def report_service(flask_app, init_database, event_publisher):
    # replace the app-wide service so endpoints and tasks use the recording publisher
    original = flask_app.extensions['report_service']
    service = ReportService(ReportStore(), event_publisher)
    flask_app.extensions['report_service'] = service
    yield service
    flask_app.extensions['report_service'] = original


@pytest.fixture(scope='session')
def dev_test_client(flask_app):
    # development mode additionally exposes the Swagger UI and the devtools blueprint
    class DevConfig(TestConfig):
        WEBAPP_ENV = 'development'

    dev_app = create_app(DevConfig)
    # create_app rebinds celery tasks to the new app, keep them on the main test app
    init_celery(flask_app)
    yield dev_app.test_client()
