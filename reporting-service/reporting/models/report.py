from datetime import datetime

import mongoengine as db

from reporting.models.base_document import BaseDocument


class ReportStatus:
    PENDING = 'Pending'
    READY = 'Ready'
    FAILED = 'Failed'

    ALL = (PENDING, READY, FAILED)
    TERMINAL = (READY, FAILED)


def validate_report_file_path(path: str):
    if not path.strip():
        raise db.errors.ValidationError('Report file path must not be blank')


class Report(BaseDocument):
    """
    A report generated out-of-band by an external worker.
    Created Pending; moves exactly once to Ready (with a file path) or Failed.
    """

    status = db.StringField(required=True, choices=ReportStatus.ALL, default=ReportStatus.PENDING)
    # set only on the Pending -> Ready transition
    path_to_report_file = db.StringField(null=True, validation=validate_report_file_path)

    request_date = db.DateTimeField(required=True, default=datetime.utcnow)
    completed_at = db.DateTimeField(null=True)

    def clean(self):
        # file path and Ready status go together
        if self.status == ReportStatus.READY and not self.path_to_report_file:
            raise db.errors.ValidationError('A Ready report requires a file path')
        if self.status != ReportStatus.READY and self.path_to_report_file:
            raise db.errors.ValidationError(f'A {self.status} report cannot have a file path')


class UndeliveredReportRequest(db.Document):
    """
    A report that was stored but whose ReportRequested event could not be published.
    Kept for operators to re-trigger generation.
    """
    DoesNotExist: db.DoesNotExist

    report_id = db.StringField(primary_key=True)
    error = db.StringField(required=True)
    failed_at = db.DateTimeField(required=True, default=datetime.utcnow)
    attempts = db.IntField(required=True, default=1)
