import logging

from flask import Blueprint, jsonify, request, current_app
from flask_expects_json import expects_json
from flask_marshmallow.fields import fields as ma_fields

from reporting import ma, api_spec
from reporting.errors import ReportingError
from reporting.schemas import schema_report_put
from reporting.services import ReportService

bp = Blueprint('report', 'report')
logger = logging.getLogger(__name__)


class ReportResponseSchema(ma.Schema):
    id = ma_fields.String(required=True, attribute='_id')
    status = ma_fields.String(required=True)
    pathToReportFile = ma_fields.String(allow_none=True, attribute='path_to_report_file')
    requestDate = ma_fields.DateTime(required=True, attribute='request_date')
    completedAt = ma_fields.DateTime(allow_none=True, attribute='completed_at')


class ReportsListResponseSchema(ma.Schema):
    reports = ma_fields.List(ma_fields.Nested(ReportResponseSchema()), required=True)
    count = ma_fields.Integer(required=True)


class UndeliveredReportRequestSchema(ma.Schema):
    reportId = ma_fields.String(required=True, attribute='report_id')
    error = ma_fields.String(required=True)
    failedAt = ma_fields.DateTime(required=True, attribute='failed_at')
    attempts = ma_fields.Integer(required=True)


class UndeliveredReportRequestsListResponseSchema(ma.Schema):
    reports = ma_fields.List(ma_fields.Nested(UndeliveredReportRequestSchema()), required=True)
    count = ma_fields.Integer(required=True)


report_response_schema = ReportResponseSchema()
reports_list_response_schema = ReportsListResponseSchema()
undelivered_list_response_schema = UndeliveredReportRequestsListResponseSchema()

# add Marshmallow schemas to APISpec
api_spec.components.schema('ReportResponse', schema=ReportResponseSchema)
api_spec.components.schema('ReportsListResponse', schema=ReportsListResponseSchema)
api_spec.components.schema('UndeliveredReportRequestsListResponse', schema=UndeliveredReportRequestsListResponseSchema)


def get_report_service() -> ReportService:
    return current_app.extensions['report_service']


@bp.errorhandler(ReportingError)
def handle_reporting_error(error: ReportingError):
    return jsonify({'msg': error.msg}), error.http_status


@bp.route('/report', methods=['POST'])
def report_post():
    """Request the asynchronous generation of a new report"""
    result = get_report_service().create_report()

    return jsonify({
        'msg': 'report requested successfully',
        'report_id': result.report_id,
        'event_published': result.event_published
    }), 200


@bp.route('/report/<report_id>', methods=['GET'])
def report_get(report_id):
    """Get a specific report by ID"""
    report = get_report_service().get_report(report_id)

    return jsonify(report_response_schema.dump(report)), 200


@bp.route('/reports', methods=['GET'])
def reports_list():
    """List all reports"""
    reports = get_report_service().get_all_reports()

    response_data = {
        'reports': reports,
        'count': len(reports)
    }

    return jsonify(reports_list_response_schema.dump(response_data)), 200


@bp.route('/report/<report_id>', methods=['PUT'])
@expects_json(schema_report_put)
def report_put(report_id):
    """Apply the result of a report generation (called by generation workers)"""
    update_data = request.json

    report = get_report_service().update_report(
        report_id,
        update_data['status'],
        update_data.get('pathToReportFile')
    )

    return jsonify(report_response_schema.dump(report)), 200


@bp.route('/reports/undelivered', methods=['GET'])
def undelivered_reports_list():
    """List pending reports whose generation request could not be published"""
    undelivered = get_report_service().get_undelivered_report_requests()

    response_data = {
        'reports': undelivered,
        'count': len(undelivered)
    }

    return jsonify(undelivered_list_response_schema.dump(response_data)), 200


@bp.route('/report/<report_id>/republish', methods=['POST'])
def report_republish_post(report_id):
    """Publish the generation request of a pending report again"""
    report = get_report_service().republish_report_request(report_id)
    logger.info(f'Generation of report {report._id} re-triggered')

    return jsonify({
        'msg': 'report generation re-triggered',
        'report_id': report._id
    }), 200
