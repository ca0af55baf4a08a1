"""
aggregation.py
Grouped counts over stop-and-search records for the dashboard charts.

Every chart (search types, outcomes, age range, gender, ethnicity) is built from
aggregate(), so the "missing value" label is decided in one place.
"""
import calendar
import math
import re
from datetime import datetime

DEFAULT_LABEL = "Unknown"

MONTH_PATTERN = re.compile(r"\d{4}-(0[1-9]|1[0-2])", re.ASCII)

# Chart name -> record field
SUMMARY_FIELDS = {
    "searchTypes": "type",
    "outcomes": "outcome",
}
DEMOGRAPHIC_FIELDS = {
    "ageRange": "age_range",
    "gender": "gender",
    "ethnicity": "self_defined_ethnicity",
}


def _percentage(value, total):
    # Round half up, matching the dashboard's Math.round
    return math.floor(value / total * 100 + 0.5)


def aggregate(records, field, default_label=DEFAULT_LABEL):
    """
    Count records per distinct value of `field`.

    Null, missing and empty values are counted under `default_label`.
    Returns [{"name", "value", "percentage"}] ordered by value descending;
    ties keep the order in which the values were first seen.
    """
    counts = {}
    for record in records:
        value = record.get(field)
        key = str(value) if value not in (None, "") else default_label
        counts[key] = counts.get(key, 0) + 1

    total = sum(counts.values())
    buckets = [
        {"name": name, "value": value, "percentage": _percentage(value, total)}
        for name, value in counts.items()
    ]

    # sorted() is stable, so equal counts stay in insertion order
    return sorted(buckets, key=lambda bucket: bucket["value"], reverse=True)


def aggregate_all(records, default_label=DEFAULT_LABEL):
    """Total plus every chart the dashboard shows."""
    records = list(records)
    result = {"total": len(records)}

    for name, field in SUMMARY_FIELDS.items():
        result[name] = aggregate(records, field, default_label)

    result["demographics"] = {
        name: aggregate(records, field, default_label)
        for name, field in DEMOGRAPHIC_FIELDS.items()
    }
    return result


def parse_datetime(value):
    """Parse the API's ISO-8601 datetime, returning None when it can't."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def date_range(records):
    """First and last day covered by the records, as YYYY-MM-DD."""
    dates = sorted(
        parsed.date().isoformat()
        for parsed in (parse_datetime(record.get("datetime")) for record in records)
        if parsed is not None
    )
    if not dates:
        return {"start": "", "end": ""}
    return {"start": dates[0], "end": dates[-1]}


def _month_key(record):
    month = record.get("month")
    if isinstance(month, str) and MONTH_PATTERN.fullmatch(month):
        return month

    parsed = parse_datetime(record.get("datetime"))
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def monthly_trends(records):
    """
    Record counts per month, oldest first.

    Uses the record's "month" key when it has been through process_records(),
    otherwise the month of its datetime. Records with neither are skipped.
    """
    counts = {}
    for record in records:
        month_key = _month_key(record)
        if month_key is None:
            continue
        counts[month_key] = counts.get(month_key, 0) + 1

    trends = []
    for month_key in sorted(counts):
        year, month = month_key.split("-")
        trends.append({
            "date": month_key,
            "count": counts[month_key],
            "month": calendar.month_abbr[int(month)],
            "year": int(year),
        })
    return trends


def generate_stats(records, default_label=DEFAULT_LABEL):
    """
    Full statistics block for the dashboard header and charts.

    Example Output:
        {"total": 2, "dateRange": {"start": "2024-01-03", "end": "2024-01-28"},
         "searchTypes": [{"name": "Person search", "value": 2, "percentage": 100}],
         "outcomes": [...], "demographics": {"ageRange": [...], ...},
         "monthlyTrends": [{"date": "2024-01", "count": 2, "month": "Jan", "year": 2024}]}
    """
    records = list(records)
    stats = aggregate_all(records, default_label)
    stats["dateRange"] = date_range(records)
    stats["monthlyTrends"] = monthly_trends(records)
    return stats
