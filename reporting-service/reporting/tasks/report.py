from flask import current_app
from celery.utils.log import get_task_logger

from reporting import celery
from reporting.errors import InvalidReportId, InvalidReportUpdate, ReportNotFound, ReportConflict, PersistenceError

logger = get_task_logger(__name__)


@celery.task(bind=True, max_retries=5, default_retry_delay=30)
def apply_report_update(self, task_data):
    """
    Applies the result of a report generation sent by a worker through the task queue.
    Equivalent to PUT /report/<id>; redelivered results are acknowledged without changes.
    """
    report_id = task_data.get('report_id')
    status = task_data.get('status')
    report_service = current_app.extensions['report_service']

    try:
        report = report_service.update_report(report_id, status, task_data.get('path_to_report_file'))

    except (InvalidReportId, InvalidReportUpdate) as exc:
        logger.error(f'Invalid update for report {report_id}: {exc.msg}')
        return {'status': 'invalid', 'report_id': report_id, 'error': exc.msg}

    except ReportNotFound:
        logger.error(f'Report {report_id} not found')
        return {'status': 'not-found', 'report_id': report_id}

    except ReportConflict as exc:
        logger.warning(f'Discarding {status} update: {exc.msg}')
        return {'status': 'conflict', 'report_id': report_id}

    except PersistenceError as exc:
        # safe to retry: the update is a conditional write
        logger.error(f'Could not store update for report {report_id}: {exc.msg}')
        raise self.retry(exc=exc)

    logger.info(f'Applied {report.status} update for report {report._id}')
    return {'status': 'updated', 'report_id': report._id}
