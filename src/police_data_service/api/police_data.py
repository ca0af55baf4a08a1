# src/police_data_service/api/police_data.py

import logging
import re
from datetime import datetime, timezone
from time import monotonic

from flask import Blueprint, current_app, jsonify, request

from police_data_service.cache import make_key
from police_data_service.config import DEFAULT_FORCE
from police_data_service.ingestion.police_fetcher import (
    ConnectionFailed,
    Empty,
    MalformedBody,
    RateLimited,
    Records,
    Timeout,
    Unavailable,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"\d{4}-\d{2}", re.ASCII)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

# 5 minutes browser cache, same as the server-side TTL
SUCCESS_CACHE_CONTROL = "public, max-age=300"

# Upper bound on months a single range request may fetch
MAX_RANGE_MONTHS = 36


class InvalidParams(Exception):
    """Bad or missing query parameters (400)."""

    status = 400


class UpstreamFailure(Exception):
    """An upstream FetchResult that must not be served or cached."""

    def __init__(self, message, status):
        super().__init__(message)
        self.message = message
        self.status = status


def parse_month_params(args, default_force=DEFAULT_FORCE):
    """
    Pull force and date out of the query string.
    Raises InvalidParams when date is missing or isn't YYYY-MM.
    """
    force = args.get("force") or default_force
    date = args.get("date")

    if not date:
        raise InvalidParams("Date parameter is required (format: YYYY-MM)")
    if not DATE_PATTERN.fullmatch(date):
        raise InvalidParams("Invalid date format. Use YYYY-MM")

    return force, date


def upstream_failure(result):
    """Map a failed FetchResult to the status code and message the client sees."""
    if isinstance(result, RateLimited):
        return UpstreamFailure("Rate limit exceeded. Please try again later.", 429)
    if isinstance(result, Timeout):
        return UpstreamFailure("Request timeout. The external API took too long to respond.", 504)
    if isinstance(result, ConnectionFailed):
        return UpstreamFailure("Failed to connect to external API. Please check your internet connection.", 503)
    if isinstance(result, MalformedBody):
        return UpstreamFailure("Invalid response format from external API", 502)
    if isinstance(result, Unavailable):
        return UpstreamFailure(f"External API error: {result.status}", 502)
    raise TypeError(f"Unhandled fetch result: {result!r}")


def load_month(cache, client, force, date):
    """
    Return the proxy payload for one force/month, from cache when fresh.

    Returns:
        {"data": [...], "month": "YYYY-MM", "total": int, "fetched_at": ISO-8601}

    Raises UpstreamFailure for anything other than records or an empty month.
    Failures are never cached. Concurrent misses for the same key may both
    fetch; the later write simply wins.
    """
    cache_key = make_key(force, date)

    cached = cache.get(cache_key)
    if cached is not None:
        logger.info(f"Cache hit for {cache_key}")
        return cached

    result = client.fetch_records(force, date)
    if not isinstance(result, (Records, Empty)):
        raise upstream_failure(result)

    payload = {
        "data": result.records,
        "month": date,
        "total": len(result.records),
        "fetched_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    cache.set(cache_key, payload)
    return payload


def _month_parts(value):
    year, month = (int(part) for part in value.split("-"))
    if not 1 <= month <= 12:
        raise InvalidParams(f"Invalid month: {value}")
    return year, month


def month_range(start, end):
    """Every YYYY-MM from start to end, inclusive."""
    year, month = _month_parts(start)
    end_year, end_month = _month_parts(end)

    months = []
    while (year, month) <= (end_year, end_month):
        months.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def parse_range_params(args, default_force=DEFAULT_FORCE):
    """
    Pull force, from and to out of the query string.
    Raises InvalidParams for missing, malformed, reversed or oversized ranges.
    """
    force = args.get("force") or default_force
    start = args.get("from")
    end = args.get("to")

    if not start or not end:
        raise InvalidParams("Both from and to are required (format: YYYY-MM)")
    if not DATE_PATTERN.fullmatch(start) or not DATE_PATTERN.fullmatch(end):
        raise InvalidParams("Invalid date format. Use YYYY-MM")

    months = month_range(start, end)
    if not months:
        raise InvalidParams("from must not be after to")
    if len(months) > MAX_RANGE_MONTHS:
        raise InvalidParams(f"Date range is limited to {MAX_RANGE_MONTHS} months")

    return force, months


def load_months(cache, client, force, months):
    """
    Load several months through load_month, one after another.

    A month that fails is skipped and reported rather than failing the
    whole range. Returns (payloads, failures) where each failure is
    {"month", "error", "status"}.
    """
    payloads = []
    failures = []
    for month in months:
        try:
            payloads.append(load_month(cache, client, force, month))
        except UpstreamFailure as e:
            logger.error(f"Skipping {force} {month}: {e.message}")
            failures.append({"month": month, "error": e.message, "status": e.status})
    return payloads, failures


def error_response(message, status, **extra):
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status


def create_police_data_blueprint(cache, client, started_at=None, default_force=DEFAULT_FORCE):
    """
    Factory that creates the police data proxy blueprint with access
    to the shared cache and the upstream client.

    Endpoints:
        GET     /api/police-data?force=<slug>&date=<YYYY-MM>
        POST    /api/police-data   {"action": "health-check" | "clear-cache"}
        OPTIONS /api/police-data
        GET     /api/forces

    Every response carries the CORS headers in CORS_HEADERS.
    """
    bp = Blueprint("police_data", __name__, url_prefix="/api")
    started_at = monotonic() if started_at is None else started_at

    @bp.after_request
    def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

    @bp.route("/police-data", methods=["OPTIONS"])
    def police_data_preflight():
        return "", 200

    @bp.route("/police-data", methods=["GET"], provide_automatic_options=False)
    def get_police_data():
        """
        Get one month of stop-and-search records for a force.

        Query Parameters:
            force (str, optional): force slug. Default = "metropolitan".
            date (str, required): month as YYYY-MM.

        Returns:
            200 {"data", "month", "total", "fetched_at"}
            400 / 429 / 502 / 503 / 504 {"error"}
        """
        try:
            force, date = parse_month_params(request.args, default_force)
        except InvalidParams as e:
            return error_response(str(e), e.status)

        try:
            payload = load_month(cache, client, force, date)
        except UpstreamFailure as e:
            return error_response(e.message, e.status)
        except Exception as e:
            logger.error(f"API route error: {e}", exc_info=True)
            if current_app.debug:
                return error_response("Internal server error", 500, message=str(e))
            return error_response("Internal server error", 500)

        response = jsonify(payload)
        response.headers["Cache-Control"] = SUCCESS_CACHE_CONTROL
        return response, 200

    @bp.route("/police-data", methods=["POST"], provide_automatic_options=False)
    def police_data_action():
        """Health check and cache maintenance."""
        body = request.get_json(force=True, silent=True)
        if body is None:
            logger.error("POST request error: body is not valid JSON")
            return error_response("Invalid request body", 400)

        # Arrays, strings and numbers parse fine but carry no action
        action = body.get("action") if isinstance(body, dict) else None

        if action == "health-check":
            return jsonify({
                "status": "healthy",
                "cache_size": cache.size(),
                "uptime": monotonic() - started_at,
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            }), 200

        if action == "clear-cache":
            cache.clear()
            logger.info("Cache cleared")
            return jsonify({"message": "Cache cleared successfully"}), 200

        return error_response("Invalid action", 400)

    @bp.route("/forces", methods=["GET"])
    def get_forces():
        """List every police force as [{"id", "name"}]."""
        try:
            forces = client.fetch_forces()
        except UpstreamError as e:
            status = 429 if e.status == 429 else 502
            return error_response(f"Unable to fetch forces: {e}", status)
        return jsonify(forces), 200

    return bp
