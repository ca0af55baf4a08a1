"""
Tests for the /api/police-data proxy endpoint.
The upstream client is mocked; each test gets its own cache and app.
"""

import pytest

from police_data_service.app import create_app
from police_data_service.cache import TTLCache
from police_data_service.config import Settings
from police_data_service.ingestion.police_fetcher import (
    ConnectionFailed,
    Empty,
    MalformedBody,
    PoliceApiClient,
    RateLimited,
    Records,
    Timeout,
    Unavailable,
)

SAMPLE_RECORDS = [
    {
        "age_range": "18-24",
        "gender": "Male",
        "self_defined_ethnicity": "White - Any other White background",
        "datetime": "2024-01-05T10:30:00+00:00",
        "type": "Person search",
        "outcome": "A no further action disposal",
        "object_of_search": "Controlled drugs",
        "location": {"latitude": "51.512044", "longitude": "-0.135271", "street": {"id": 1, "name": "On or near Regent Street"}},
    },
    {
        "age_range": None,
        "gender": None,
        "self_defined_ethnicity": None,
        "datetime": "2024-01-09T22:00:00+00:00",
        "type": "Vehicle search",
        "outcome": "Arrest",
        "object_of_search": "Stolen goods",
        "location": None,
    },
]

CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@pytest.fixture
def cache():
    cache = TTLCache()
    yield cache
    cache.teardown()


@pytest.fixture
def upstream(mocker):
    upstream = mocker.MagicMock(spec=PoliceApiClient)
    upstream.fetch_records.return_value = Records(records=SAMPLE_RECORDS)
    return upstream


@pytest.fixture
def client(cache, upstream):
    """Flask test client fixture."""
    app = create_app(settings=Settings(), cache=cache, client=upstream)
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def assert_cors(response):
    for header, value in CORS.items():
        assert response.headers[header] == value


def test_get_returns_records(client, upstream):
    response = client.get('/api/police-data?force=metropolitan&date=2024-01')

    assert response.status_code == 200
    data = response.get_json()
    assert data["data"] == SAMPLE_RECORDS
    assert data["month"] == "2024-01"
    assert data["total"] == 2
    assert data["fetched_at"].endswith("Z")
    assert response.headers["Cache-Control"] == "public, max-age=300"
    assert_cors(response)
    upstream.fetch_records.assert_called_once_with("metropolitan", "2024-01")


def test_force_defaults_to_metropolitan(client, upstream):
    client.get('/api/police-data?date=2024-01')

    upstream.fetch_records.assert_called_once_with("metropolitan", "2024-01")


def test_second_request_is_served_from_cache(client, upstream, cache):
    first = client.get('/api/police-data?force=metropolitan&date=2024-01')
    second = client.get('/api/police-data?force=metropolitan&date=2024-01')

    assert second.status_code == 200
    assert second.get_json() == first.get_json()
    assert second.data == first.data
    assert upstream.fetch_records.call_count == 1
    assert cache.size() == 1


def test_cache_is_keyed_by_force_and_month(client, upstream, cache):
    client.get('/api/police-data?force=metropolitan&date=2024-01')
    client.get('/api/police-data?force=kent&date=2024-01')
    client.get('/api/police-data?force=metropolitan&date=2024-02')

    assert upstream.fetch_records.call_count == 3
    assert cache.get("kent-2024-01") is not None


def test_missing_date(client, upstream, cache):
    response = client.get('/api/police-data?force=metropolitan')

    assert response.status_code == 400
    assert "Date parameter is required" in response.get_json()["error"]
    assert_cors(response)
    assert cache.size() == 0
    upstream.fetch_records.assert_not_called()


@pytest.mark.parametrize("date", ["invalid-date", "2024-1", "2024/01", "24-01", "2024-01-15", "２０２４-０１"])
def test_invalid_date_format(client, upstream, cache, date):
    response = client.get('/api/police-data', query_string={"force": "metropolitan", "date": date})

    assert response.status_code == 400
    assert "Invalid date format" in response.get_json()["error"]
    assert cache.size() == 0
    upstream.fetch_records.assert_not_called()


def test_empty_month_is_200_and_cached(client, upstream, cache):
    upstream.fetch_records.return_value = Empty()

    response = client.get('/api/police-data?force=metropolitan&date=2030-01')

    assert response.status_code == 200
    data = response.get_json()
    assert data["data"] == []
    assert data["total"] == 0
    assert data["month"] == "2030-01"
    assert cache.get("metropolitan-2030-01") is not None

    client.get('/api/police-data?force=metropolitan&date=2030-01')
    assert upstream.fetch_records.call_count == 1


@pytest.mark.parametrize("result, status", [
    (RateLimited(), 429),
    (Unavailable(status=500, message="upstream error 500"), 502),
    (MalformedBody(), 502),
    (ConnectionFailed(), 503),
    (Timeout(), 504),
])
def test_upstream_failures_map_to_status_and_are_not_cached(client, upstream, cache, result, status):
    upstream.fetch_records.return_value = result

    response = client.get('/api/police-data?force=metropolitan&date=2024-01')

    assert response.status_code == status
    assert "error" in response.get_json()
    assert "Cache-Control" not in response.headers
    assert_cors(response)
    assert cache.size() == 0

    client.get('/api/police-data?force=metropolitan&date=2024-01')
    assert upstream.fetch_records.call_count == 2


def test_rate_limit_message(client, upstream):
    upstream.fetch_records.return_value = RateLimited()

    response = client.get('/api/police-data?date=2024-01')

    assert response.get_json() == {"error": "Rate limit exceeded. Please try again later."}


def test_unexpected_error_is_500(client, upstream):
    upstream.fetch_records.side_effect = RuntimeError("boom")

    response = client.get('/api/police-data?date=2024-01')

    assert response.status_code == 500
    assert response.get_json()["error"] == "Internal server error"
    assert_cors(response)


def test_options_preflight(client):
    response = client.options('/api/police-data')

    assert response.status_code == 200
    assert response.data == b""
    assert_cors(response)
    # Only the CORS headers, no automatic Allow header from the GET/POST rules
    assert "Allow" not in response.headers


def test_health_check(client, cache):
    client.get('/api/police-data?date=2024-01')

    response = client.post('/api/police-data', json={"action": "health-check"})

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["cache_size"] == 1
    assert isinstance(data["uptime"], (int, float))
    assert data["uptime"] >= 0
    assert "timestamp" in data
    assert_cors(response)


def test_clear_cache_forces_fresh_fetch(client, upstream, cache):
    client.get('/api/police-data?force=metropolitan&date=2024-01')
    assert upstream.fetch_records.call_count == 1

    response = client.post('/api/police-data', json={"action": "clear-cache"})

    assert response.status_code == 200
    assert response.get_json() == {"message": "Cache cleared successfully"}
    assert cache.size() == 0

    client.get('/api/police-data?force=metropolitan&date=2024-01')
    assert upstream.fetch_records.call_count == 2


@pytest.mark.parametrize("body", [{"action": "reboot"}, {}, {"action": None}, [1, 2], "reboot", 42])
def test_invalid_action(client, body):
    """Any JSON that parses but has no known action is an invalid action, not a bad body."""
    response = client.post('/api/police-data', json=body)

    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid action"}


@pytest.mark.parametrize("raw", ["not json", "{\"action\": ", "null", ""])
def test_invalid_request_body(client, raw):
    response = client.post('/api/police-data', data=raw, content_type='application/json')

    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid request body"}
    assert_cors(response)


def test_forces_endpoint(client, upstream):
    upstream.fetch_forces.return_value = [{"id": "metropolitan", "name": "Metropolitan Police Service"}]

    response = client.get('/api/forces')

    assert response.status_code == 200
    assert response.get_json() == [{"id": "metropolitan", "name": "Metropolitan Police Service"}]
