"""
Report lifecycle.

A report is created Pending and its identifier returned to the caller as soon as
the record is stored. Generation is requested from external workers through a
ReportRequested integration event; workers report back through `update_report`,
which applies exactly one terminal transition (Pending -> Ready or Pending -> Failed).
"""
import logging
import uuid
from datetime import datetime
from typing import List, NamedTuple, Optional

from reporting.errors import (
    InvalidReportId, InvalidReportUpdate, ReportNotFound, ReportConflict, PublishError, PersistenceError
)
from reporting.events import IntegrationEventPublisher, ReportRequestedEvent
from reporting.models import Report, ReportStatus, UndeliveredReportRequest
from reporting.store import ReportStore

logger = logging.getLogger(__name__)


class CreateReportResult(NamedTuple):
    report_id: str
    # False means the report is stored but no worker was notified (degraded success)
    event_published: bool


def parse_report_id(report_id) -> str:
    """ Returns the canonical form of a report identifier, raises InvalidReportId if malformed """
    try:
        return str(uuid.UUID(report_id.strip()))
    except (AttributeError, TypeError, ValueError):
        raise InvalidReportId(f'Invalid report id: {report_id!r}')


class ReportService:

    def __init__(self, store: ReportStore, publisher: IntegrationEventPublisher):
        self.store = store
        self.publisher = publisher

    def create_report(self) -> CreateReportResult:
        # the Pending record must be stored before anyone learns its id
        report = self.store.create()
        report_id = report._id
        logger.info(f'Created pending report {report_id}')

        try:
            self.publisher.publish(ReportRequestedEvent(report_id))
        except Exception as e:
            # the report stays Pending and is flagged for republishing
            logger.error(f'[degraded] report {report_id} is pending but ReportRequested was not published: {str(e)}')
            self._record_publish_failure(report_id, e)
            return CreateReportResult(report_id, event_published=False)

        return CreateReportResult(report_id, event_published=True)

    def get_report(self, report_id) -> Report:
        report_id = parse_report_id(report_id)
        report = self.store.get_by_id(report_id)
        if report is None:
            raise ReportNotFound(f'Report {report_id} not found')
        return report

    def get_all_reports(self) -> List[Report]:
        return self.store.get_all()

    def update_report(self, report_id, status: str, path_to_report_file: Optional[str] = None) -> Report:
        """
        Apply the terminal status reported by a worker.

        Repeating the transition a report already went through is a no-op, so
        redelivered worker results are harmless. Any other update of a report
        that is no longer Pending raises ReportConflict.
        """
        report_id = parse_report_id(report_id)
        path_to_report_file = validate_report_update(status, path_to_report_file)

        report = self.store.get_by_id(report_id)
        if report is None:
            raise ReportNotFound(f'Report {report_id} not found')

        if report.status == ReportStatus.PENDING:
            report.status = status
            report.path_to_report_file = path_to_report_file
            report.completed_at = datetime.utcnow()
            if self.store.update(report, expected_status=ReportStatus.PENDING):
                logger.info(f'Report {report_id} is {status}')
                return report

            # a concurrent update got there first
            report = self.store.get_by_id(report_id)

        if report.status == status and report.path_to_report_file == path_to_report_file:
            logger.info(f'Ignoring repeated {status} update for report {report_id}')
            return report

        logger.warning(f'Rejected {status} update for report {report_id}: report is already {report.status}')
        raise ReportConflict(f'Report {report_id} is already {report.status}')

    def republish_report_request(self, report_id) -> Report:
        """ Publishes a new ReportRequested event for a report that is still Pending """
        report = self.get_report(report_id)
        if report.status != ReportStatus.PENDING:
            raise ReportConflict(f'Report {report._id} is already {report.status}')

        try:
            self.publisher.publish(ReportRequestedEvent(report._id))
        except Exception as e:
            logger.error(f'Failed to republish ReportRequested for report {report._id}: {str(e)}')
            self._record_publish_failure(report._id, e)
            raise PublishError(f'Failed to publish ReportRequested for report {report._id}') from e

        self.store.clear_publish_failure(report._id)
        logger.info(f'Republished ReportRequested for report {report._id}')
        return report

    def get_undelivered_report_requests(self) -> List[UndeliveredReportRequest]:
        return self.store.get_publish_failures()

    def _record_publish_failure(self, report_id: str, error: Exception):
        try:
            self.store.record_publish_failure(report_id, str(error) or error.__class__.__name__)
        except PersistenceError:
            logger.exception(f'[degraded] could not record undelivered ReportRequested for report {report_id}')


def validate_report_update(status: str, path_to_report_file: Optional[str]) -> Optional[str]:
    """ Checks a worker result and returns the normalized file path """
    if status not in ReportStatus.TERMINAL:
        raise InvalidReportUpdate(f'Status must be one of {", ".join(ReportStatus.TERMINAL)}')

    if path_to_report_file is not None and not isinstance(path_to_report_file, str):
        raise InvalidReportUpdate('pathToReportFile must be a string')
    if path_to_report_file is not None and not path_to_report_file.strip():
        path_to_report_file = None

    if status == ReportStatus.READY and path_to_report_file is None:
        raise InvalidReportUpdate('A Ready report requires pathToReportFile')
    if status == ReportStatus.FAILED and path_to_report_file is not None:
        raise InvalidReportUpdate('A Failed report cannot have pathToReportFile')

    return path_to_report_file
