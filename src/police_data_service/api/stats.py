# src/police_data_service/api/stats.py

import logging

from flask import Blueprint, current_app, jsonify, request

from police_data_service.api.police_data import (
    CORS_HEADERS,
    InvalidParams,
    UpstreamFailure,
    error_response,
    load_month,
    load_months,
    parse_month_params,
    parse_range_params,
)
from police_data_service.config import DEFAULT_FORCE
from police_data_service.processing.aggregation import DEFAULT_LABEL, generate_stats
from police_data_service.processing.records import filter_options, process_records, sort_records

logger = logging.getLogger(__name__)


def create_stats_blueprint(cache, client, default_force=DEFAULT_FORCE):
    """
    Factory that creates the stats blueprint. It shares the proxy's cache,
    so a month loaded by the dashboard is aggregated without a second
    upstream call.

    Endpoint:
        GET /api/police-data/stats

    Query Parameters:
        force (str, optional): force slug. Default = "metropolitan".
        date (str): month as YYYY-MM, for a single month.
        from, to (str): first and last month as YYYY-MM, for a range.
            Takes precedence over date when either is given.
        default_label (str, optional): bucket name for missing values. Default = "Unknown".
    """
    bp = Blueprint("stats", __name__, url_prefix="/api")

    @bp.after_request
    def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

    def month_stats(default_label):
        force, date = parse_month_params(request.args, default_force)
        payload = load_month(cache, client, force, date)
        records = process_records(payload["data"], payload["month"])

        return {
            "force": force,
            "month": payload["month"],
            "fetched_at": payload["fetched_at"],
            "stats": generate_stats(records, default_label),
            "filterOptions": filter_options(records),
        }

    def range_stats(default_label):
        force, months = parse_range_params(request.args, default_force)
        payloads, failures = load_months(cache, client, force, months)

        # Nothing to aggregate: answer with the last month's error
        if not payloads:
            last = failures[-1]
            raise UpstreamFailure(last["error"], last["status"])

        records = []
        for payload in payloads:
            records.extend(process_records(payload["data"], payload["month"]))
        records = sort_records(records, "datetime", "desc")

        return {
            "force": force,
            "from": months[0],
            "to": months[-1],
            "months": [payload["month"] for payload in payloads],
            "failedMonths": failures,
            "stats": generate_stats(records, default_label),
            "filterOptions": filter_options(records),
        }

    @bp.route("/police-data/stats", methods=["GET"])
    def get_stats():
        """
        Returns:
            single month: {"force", "month", "fetched_at", "stats", "filterOptions"}
            range: {"force", "from", "to", "months", "failedMonths", "stats", "filterOptions"}
        """
        default_label = request.args.get("default_label") or DEFAULT_LABEL

        try:
            if "from" in request.args or "to" in request.args:
                body = range_stats(default_label)
            else:
                body = month_stats(default_label)
        except InvalidParams as e:
            return error_response(str(e), e.status)
        except UpstreamFailure as e:
            return error_response(e.message, e.status)
        except Exception as e:
            logger.error(f"Stats route error: {e}", exc_info=True)
            if current_app.debug:
                return error_response("Internal server error", 500, message=str(e))
            return error_response("Internal server error", 500)

        return jsonify(body), 200

    return bp
