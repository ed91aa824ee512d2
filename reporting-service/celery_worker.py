import logging.config
from celery.signals import after_setup_task_logger

from reporting import create_app
from reporting import celery
from reporting.logs import logging_config_celery

app = create_app()
app.app_context().push()


# configure application logging
def initialize_logging(logger=None, loglevel=logging.INFO, **kwargs):
    logging.config.dictConfig(logging_config_celery)


after_setup_task_logger.connect(initialize_logging)


if __name__ == '__main__':
    argv = [
        'worker',
        '--loglevel=INFO',
        f'--queues={app.config["REPORT_CELERY_QUEUE"]}',
    ]
    celery.worker_main(argv)
