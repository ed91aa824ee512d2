from datetime import datetime
import logging
from flask_log_request_id import RequestIDLogFilter
from flask import request


class TaskFormatter(logging.Formatter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        from celery._state import get_current_task
        self.get_current_task = get_current_task

    def format(self, record):
        task = self.get_current_task()
        if task and task.request:
            record.__dict__.update(task_id=task.request.id,
                                   task_name=task.name)
        else:
            record.__dict__.setdefault('task_name', '')
            record.__dict__.setdefault('task_id', '')
        return super().format(record)


class ContextualFilter(logging.Filter):
    def filter(self, log_record):
        """ Provide some extra variables to give our logs some better info """
        log_record.utcnow = datetime.utcnow().isoformat(sep=' ', timespec='milliseconds')
        log_record.url = request.path if request else '-'
        log_record.method = request.method if request else '-'
        return True


class ContextualFilterCelery(ContextualFilter):
    def filter(self, log_record):
        """ Provide some extra variables to give our logs some better info """
        log_record.utcnow = datetime.utcnow().isoformat(sep=' ', timespec='milliseconds')
        return True


webapp_logger_format = '[%(utcnow)s][%(url)s %(method)s %(request_id)8.8s] %(levelname)s - %(message)s'
celery_logger_format = '[%(utcnow)s] Task %(task_name)s[%(task_id)s] %(levelname)s - %(message)s'


webapp_logging_config = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'webapp': {
            'format': webapp_logger_format
        }
    },
    'filters': {
        'contextual_filter': {
            '()': ContextualFilter
        },
        'request_id_filter': {
            '()': RequestIDLogFilter
        }
    },
    'handlers': {
        'webapp': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'webapp',
            'filters': ['contextual_filter', 'request_id_filter'],
            'stream': 'ext://sys.stdout'
        },
        'operations': {
            'level': 'WARNING',
            'class': 'logging.StreamHandler',
            'formatter': 'webapp',
            'filters': ['contextual_filter', 'request_id_filter'],
            'stream': 'ext://sys.stderr'
        }
    },
    'loggers': {
        'reporting': {
            'level': 'INFO',
            'handlers': ['webapp'],
            'propagate': False
        },
        # degraded successes and rejected updates also go to stderr for alerting
        'reporting.services.report': {
            'level': 'INFO',
            'handlers': ['webapp', 'operations'],
            'propagate': False
        }
    }
}


logging_config_celery = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'celery': {
            '()': TaskFormatter,
            'format': celery_logger_format
        }
    },
    'filters': {
        'contextual_filter': {
            '()': ContextualFilterCelery
        }
    },
    'handlers': {
        'celery': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'celery',
            'filters': ['contextual_filter'],
            'stream': 'ext://sys.stdout'
        }
    },
    'loggers': {
        'reporting': {
            'level': 'INFO',
            'handlers': ['celery'],
            'propagate': False
        }
    }
}
