from reporting.tasks.report import apply_report_update
