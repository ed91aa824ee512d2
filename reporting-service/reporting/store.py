import logging
from datetime import datetime
from functools import wraps
from typing import List, Optional

from mongoengine.errors import NotUniqueError, OperationError
from pymongo.errors import PyMongoError

from reporting.errors import PersistenceError
from reporting.models import Report, ReportStatus, UndeliveredReportRequest

logger = logging.getLogger(__name__)


def translate_store_errors(f):
    # driver and ODM failures surface as a single PersistenceError
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (PyMongoError, OperationError) as exc:
            logger.error(f'Report store failure in {f.__name__}: {str(exc)}')
            raise PersistenceError() from exc
    return decorated_function


class ReportStore:
    """
    MongoDB persistence for Report documents.

    Reports are inserted once and then only written through `update`, which is
    a conditional write matched on both the report id and its expected current
    status. Two racing updates for the same report can therefore never both
    apply: MongoDB evaluates the filter and the write atomically per document.
    """

    @translate_store_errors
    def get_all(self) -> List[Report]:
        return list(Report.objects())

    @translate_store_errors
    def get_by_id(self, report_id: str) -> Optional[Report]:
        return Report.objects(_id=report_id).first()

    @translate_store_errors
    def create(self) -> Report:
        report = Report(status=ReportStatus.PENDING, request_date=datetime.utcnow())
        try:
            # insert-only: an id collision must never overwrite an existing report
            report.save(force_insert=True)
        except NotUniqueError as exc:
            raise PersistenceError(f'Report id collision: {report._id}') from exc
        return report

    @translate_store_errors
    def update(self, report: Report, expected_status: str = ReportStatus.PENDING) -> bool:
        """
        Replace the mutable fields of the stored report with those of `report`,
        only if the stored report is still in `expected_status`.

        Returns True if the write was applied.
        """
        updated = Report.objects(_id=report._id, status=expected_status).update_one(
            set__status=report.status,
            set__path_to_report_file=report.path_to_report_file,
            set__completed_at=report.completed_at,
        )
        return updated == 1

    # undelivered ReportRequested events

    @translate_store_errors
    def record_publish_failure(self, report_id: str, error: str) -> UndeliveredReportRequest:
        UndeliveredReportRequest.objects(report_id=report_id).update_one(
            set__error=error,
            set__failed_at=datetime.utcnow(),
            inc__attempts=1,
            upsert=True,
        )
        return UndeliveredReportRequest.objects(report_id=report_id).get()

    @translate_store_errors
    def clear_publish_failure(self, report_id: str) -> None:
        UndeliveredReportRequest.objects(report_id=report_id).delete()

    @translate_store_errors
    def get_publish_failures(self) -> List[UndeliveredReportRequest]:
        return list(UndeliveredReportRequest.objects().order_by('failed_at'))


def init_mongo_indexes():
    Report._get_collection().create_index('status', background=True)
    Report._get_collection().create_index('request_date', background=True)
    UndeliveredReportRequest._get_collection().create_index('failed_at', background=True)
