"""
records.py
Helpers the dashboard table and filter panel use on a month of records:
enrichment, filtering, free-text search, sorting, and filter options.

None of these mutate their input; they return new lists (and new dicts where
records are enriched).
"""
from police_data_service.processing.aggregation import DEFAULT_LABEL, parse_datetime

# Simple extraction - matched as a substring of the street name
LONDON_BOROUGHS = [
    "Westminster", "Camden", "Islington", "Hackney", "Tower Hamlets",
    "Greenwich", "Lewisham", "Southwark", "Lambeth", "Wandsworth",
    "Hammersmith", "Kensington", "Chelsea", "Barnet", "Enfield",
    "Haringey", "Newham", "Redbridge", "Waltham Forest", "Brent",
    "Ealing", "Harrow", "Hillingdon", "Hounslow", "Richmond",
    "Kingston", "Merton", "Sutton", "Croydon", "Bromley",
    "Bexley", "Havering",
]

# Filter name -> record field
FILTER_FIELDS = {
    "search_type": "type",
    "age_range": "age_range",
    "gender": "gender",
    "ethnicity": "self_defined_ethnicity",
    "outcome": "outcome",
    "object_of_search": "object_of_search",
}

OPTION_FIELDS = {
    "searchTypes": "type",
    "ageRanges": "age_range",
    "genders": "gender",
    "ethnicities": "self_defined_ethnicity",
    "outcomes": "outcome",
    "objectsOfSearch": "object_of_search",
}

SEARCHABLE_FIELDS = ["type", "outcome", "object_of_search", "age_range", "gender", "self_defined_ethnicity"]

SORTABLE_FIELDS = ["datetime", "type", "outcome", "object_of_search", "age_range", "gender", "self_defined_ethnicity"]


def street_name(record):
    location = record.get("location") or {}
    street = location.get("street") or {}
    return street.get("name") or ""


def extract_borough(street):
    lowered = street.lower()
    for borough in LONDON_BOROUGHS:
        if borough.lower() in lowered:
            return borough
    return DEFAULT_LABEL


def process_records(records, month):
    """
    Enrich raw API records with the keys the table and charts need.

    Adds id ("{month}-{index}-{epoch ms}"), date (YYYY-MM-DD), month, year and borough.
    """
    processed = []
    for index, record in enumerate(records):
        parsed = parse_datetime(record.get("datetime"))
        epoch_ms = int(parsed.timestamp() * 1000) if parsed else 0

        enriched = dict(record)
        enriched.update({
            "id": f"{month}-{index}-{epoch_ms}",
            "date": parsed.date().isoformat() if parsed else None,
            "month": month,
            "year": parsed.year if parsed else None,
            "borough": extract_borough(street_name(record)),
        })
        processed.append(enriched)
    return processed


def filter_records(records, date_range=None, **criteria):
    """
    Keep records matching every given criterion.

    date_range is {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"} (inclusive).
    Other criteria are keyed by FILTER_FIELDS and hold lists of allowed values;
    an empty list means "no constraint". A record whose field is null never
    matches a non-empty list.
    """
    unknown = set(criteria) - set(FILTER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown filter(s): {', '.join(sorted(unknown))}")

    active = {FILTER_FIELDS[name]: set(values) for name, values in criteria.items() if values}

    start = end = None
    if date_range and date_range.get("start") and date_range.get("end"):
        start, end = date_range["start"], date_range["end"]

    result = []
    for record in records:
        if start is not None:
            parsed = parse_datetime(record.get("datetime"))
            if parsed is None:
                continue
            day = parsed.date().isoformat()
            if day < start or day > end:
                continue

        if all(record.get(field) and record.get(field) in allowed for field, allowed in active.items()):
            result.append(record)
    return result


def filter_options(records):
    """Sorted unique, non-null values for each filter drop-down."""
    return {
        name: sorted({record.get(field) for record in records if record.get(field)})
        for name, field in OPTION_FIELDS.items()
    }


def search_records(records, term):
    """Case-insensitive substring search over street name and the text columns."""
    if not term or not term.strip():
        return list(records)

    needle = term.strip().lower()
    result = []
    for record in records:
        haystack = [street_name(record)] + [record.get(field) or "" for field in SEARCHABLE_FIELDS]
        if any(needle in str(value).lower() for value in haystack):
            result.append(record)
    return result


def _sort_value(record, field):
    value = record.get(field)
    if field == "datetime":
        parsed = parse_datetime(value)
        return parsed.timestamp() if parsed else float("-inf")
    if value is None:
        return ""
    return str(value).lower()


def sort_records(records, field="datetime", direction="desc"):
    """Sort for the table: datetime chronologically, everything else case-insensitively."""
    if field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {field!r}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Sort direction must be 'asc' or 'desc', not {direction!r}")

    return sorted(records, key=lambda record: _sort_value(record, field), reverse=direction == "desc")
