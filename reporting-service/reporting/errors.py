class ReportingError(Exception):
    """Base class for errors raised by the reporting domain"""

    http_status = 500
    msg = 'Internal error'

    def __init__(self, msg: str = None):
        super().__init__(msg or self.msg)
        self.msg = msg or self.msg


class InvalidReportId(ReportingError):
    http_status = 400
    msg = 'Invalid report id'


class InvalidReportUpdate(ReportingError):
    http_status = 400
    msg = 'Invalid report update'


class ReportNotFound(ReportingError):
    http_status = 404
    msg = 'Report not found'


class ReportConflict(ReportingError):
    """Raised when a report is not in the status an operation requires"""
    http_status = 409
    msg = 'Report is not pending'


class PersistenceError(ReportingError):
    http_status = 503
    msg = 'Report store unavailable'


class PublishError(ReportingError):
    http_status = 503
    msg = 'Event bus unavailable'
