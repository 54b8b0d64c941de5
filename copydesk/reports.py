"""
Report download proxy.

The backend builds the Excel files; these routes validate the date ranges,
forward the request with the user's token and stream the binary back as an
attachment.
"""

import calendar
import io
import logging
from datetime import date
from typing import Dict, Optional

from flask import Blueprint, render_template, request, send_file

from . import web
from .api_client import ApiError, Report
from .forms import ComparisonReportForm, ReportRangeForm, validate_form

logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")


def month_range(year: int, month: int) -> Dict[str, str]:
    """First and last day of a month as ISO dates."""
    last_day = calendar.monthrange(year, month)[1]
    return {
        "start": date(year, month, 1).isoformat(),
        "end": date(year, month, last_day).isoformat(),
    }


def default_ranges(today: Optional[date] = None) -> Dict[str, str]:
    """
    Initial form values: the current month for the requester report, the
    previous month vs the current month for the comparison.
    """
    today = today or date.today()
    current = month_range(today.year, today.month)
    if today.month == 1:
        previous = month_range(today.year - 1, 12)
    else:
        previous = month_range(today.year, today.month - 1)
    return {
        "start_date": current["start"],
        "end_date": current["end"],
        "first_start_date": previous["start"],
        "first_end_date": previous["end"],
        "second_start_date": current["start"],
        "second_end_date": current["end"],
    }


def send_report(report: Report):
    return send_file(
        io.BytesIO(report.content),
        mimetype=report.content_type,
        as_attachment=True,
        download_name=report.filename,
    )


def render_reports(values: Dict[str, str], errors: Optional[Dict[str, str]] = None,
                   error: Optional[str] = None, status: int = 200):
    return render_template(
        "pages/reports.html",
        values=values,
        errors=errors or {},
        error=error,
    ), status


@reports_bp.route("", methods=["GET"])
@web.login_required
def index():
    """Render the report page with default date ranges."""
    return render_reports(default_ranges())


@reports_bp.route("/by-requester", methods=["GET"])
@web.login_required
def by_requester():
    """
    Download the per-requester report.

    Query Parameters:
        start_date, end_date: ISO dates, start <= end
    """
    values = {**default_ranges(), **request.args.to_dict()}
    form, errors = validate_form(ReportRangeForm, request.args)
    if errors:
        return render_reports(values, errors=errors, status=400)

    try:
        report = web.get_backend().print_requests.get_report(
            form.start_date.isoformat(), form.end_date.isoformat()
        )
    except ApiError as e:
        if e.is_unauthorized:
            raise
        logger.warning(f"Requester report failed: {e.status_code} {e.message}")
        return render_reports(values, error=e.user_message("Failed to download the report"), status=e.status_code)

    logger.info(f"Requester report downloaded: {report.filename}")
    return send_report(report)


@reports_bp.route("/comparison", methods=["GET"])
@web.login_required
def comparison():
    """
    Download the two-period comparison report.

    Query Parameters:
        first_start_date, first_end_date, second_start_date, second_end_date
    """
    values = {**default_ranges(), **request.args.to_dict()}
    form, errors = validate_form(ComparisonReportForm, request.args)
    if errors:
        return render_reports(values, errors=errors, status=400)

    try:
        report = web.get_backend().print_requests.get_comparison_report(
            form.first_start_date.isoformat(),
            form.first_end_date.isoformat(),
            form.second_start_date.isoformat(),
            form.second_end_date.isoformat(),
        )
    except ApiError as e:
        if e.is_unauthorized:
            raise
        logger.warning(f"Comparison report failed: {e.status_code} {e.message}")
        return render_reports(values, error=e.user_message("Failed to download the comparison report"),
                              status=e.status_code)

    logger.info(f"Comparison report downloaded: {report.filename}")
    return send_report(report)


@reports_bp.route("/all", methods=["GET"])
@web.login_required
def export_all():
    """Download every print request as one spreadsheet."""
    try:
        report = web.get_backend().print_requests.export_all()
    except ApiError as e:
        if e.is_unauthorized:
            raise
        logger.warning(f"Full export failed: {e.status_code} {e.message}")
        return render_reports(default_ranges(), error=e.user_message("Failed to export requests"),
                              status=e.status_code)
    return send_report(report)
