"""
police_fetcher.py
This code retrieves raw stop-and-search records from the public police API
(https://data.police.uk/api).

Every call to fetch_records() returns exactly one FetchResult variant instead of
raising, so the caller can decide what HTTP status to answer with:

    Records           200 with a JSON array
    Empty             404, i.e. no data published for that force/month
    RateLimited       429
    Unavailable       any other non-2xx status
    MalformedBody     200 but the body is not a JSON array
    Timeout           the request took longer than the configured timeout
    ConnectionFailed  DNS failures, refused connections, etc.

Nothing here retries; one call means one upstream request.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Union

import requests

from police_data_service.config import DEFAULT_API_BASE_URL, DEFAULT_USER_AGENT

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Records:
    records: list = field(default_factory=list)


@dataclass(frozen=True)
class Empty:
    records: list = field(default_factory=list)


@dataclass(frozen=True)
class RateLimited:
    status: int = 429
    message: str = "rate limited"


@dataclass(frozen=True)
class Unavailable:
    status: int
    message: str


@dataclass(frozen=True)
class MalformedBody:
    message: str = "invalid upstream format"


@dataclass(frozen=True)
class Timeout:
    message: str = "timeout"


@dataclass(frozen=True)
class ConnectionFailed:
    message: str = "connection failed"


FetchResult = Union[Records, Empty, RateLimited, Unavailable, MalformedBody, Timeout, ConnectionFailed]


class UpstreamError(Exception):
    """Raised by calls that have no result type of their own (e.g. fetch_forces)."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class PoliceApiClient:
    """Thin requests wrapper around the stop-and-search endpoints."""

    def __init__(self, base_url=DEFAULT_API_BASE_URL, timeout=30,
                 user_agent=DEFAULT_USER_AGENT, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "application/json",
        }

    def _get(self, path, params=None):
        return self.session.get(
            f"{self.base_url}/{path}",
            params=params,
            headers=self.headers,
            timeout=self.timeout,
        )

    def fetch_records(self, force: str, date: str) -> FetchResult:
        """
        Grab one month of stop-and-search records for a force and normalize the outcome.
        """
        url = f"{self.base_url}/stops-force?force={force}&date={date}"
        logger.info(f"Fetching data from: {url}")

        try:
            response = self._get("stops-force", params={"force": force, "date": date})
        except requests.exceptions.Timeout as timeoutError:
            logger.error(f"Request to {url} timed out after {self.timeout}s. \nError: {timeoutError}")
            return Timeout()
        except requests.exceptions.RequestException as requestError:
            # If something wrong with the connection
            logger.error(f"Something went wrong with the connection to {url}. \nError: {requestError}")
            return ConnectionFailed()

        code = response.status_code

        # Handle HTTP errors
        if code == 404:
            logger.info(f"No data available for {force} in {date}")
            return Empty()
        if code == 429:
            logger.error(f"Error 429: Rate limited by {url}")
            return RateLimited()
        if not 200 <= code < 300:
            logger.error(f"Unknown HTTP Error {code}: Unable to get JSON from {url}")
            return Unavailable(status=code, message=f"upstream error {code}")

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as jsonError:
            # If JSON data is not valid
            logger.error(f"The JSON data from {url} is not valid. \nError: {jsonError}")
            return MalformedBody()

        if not isinstance(data, list):
            logger.error(f"Invalid response format from {url}: expected a list, got {type(data).__name__}")
            return MalformedBody()

        logger.info(f"Successfully fetched {len(data)} records for {date}")
        return Records(records=data)

    def fetch_forces(self):
        """
        Return every police force as [{"id", "name"}], sorted by name.
        Raises UpstreamError when the list can't be retrieved.
        """
        try:
            response = self._get("forces")
            response.raise_for_status()
            forces = response.json()
        except requests.exceptions.HTTPError as httpError:
            code = httpError.response.status_code if httpError.response is not None else None
            logger.error(f"Unable to fetch forces (HTTP {code}). \nError: {httpError}")
            raise UpstreamError(f"upstream error {code}", status=code) from httpError
        except requests.exceptions.Timeout as timeoutError:
            logger.error(f"Fetching forces timed out. \nError: {timeoutError}")
            raise UpstreamError("timeout") from timeoutError
        except requests.exceptions.RequestException as requestError:
            logger.error(f"Something went wrong with the connection. \nError: {requestError}")
            raise UpstreamError("connection failed") from requestError
        except ValueError as jsonError:
            logger.error(f"The forces JSON data is not valid. \nError: {jsonError}")
            raise UpstreamError("invalid upstream format") from jsonError

        if not isinstance(forces, list):
            raise UpstreamError("invalid upstream format")

        return sorted(
            ({"id": force.get("id"), "name": force.get("name")} for force in forces if isinstance(force, dict)),
            key=lambda force: (force["name"] or "").lower(),
        )
