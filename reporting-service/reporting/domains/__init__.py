from reporting.domains.report import bp as report_blueprint
