from reporting.services.report import ReportService, CreateReportResult
