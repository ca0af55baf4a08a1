"""
app.py: Main Flask application for the Police Data Service.

This service sits between the stop-and-search dashboard and data.police.uk:
- A same-origin proxy endpoint (/api/police-data) with validation, CORS and
  an in-memory TTL cache.
- Server-side statistics for a force/month (/api/police-data/stats).
- The list of police forces (/api/forces).
- Open API (Swagger) integration for documentation.

Run with: python -m police_data_service.app (starts on port 5001).
"""

import atexit
import logging
from time import monotonic

from flask import Flask, jsonify
from flask_cors import CORS
from flask_swagger_ui import get_swaggerui_blueprint

from police_data_service.api.police_data import create_police_data_blueprint
from police_data_service.api.stats import create_stats_blueprint
from police_data_service.cache import TTLCache
from police_data_service.config import Settings
from police_data_service.ingestion.police_fetcher import PoliceApiClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Swagger UI configuration
SWAGGER_URL = '/swagger'  # URL for Swagger UI (e.g., http://localhost:5001/swagger)
API_URL = '/swagger.json'

# Swagger UI config (passed to blueprint)
SWAGGER_CONFIG = {
    'app_name': "Police Data Service",
    'deepLinking': True,
    'defaultModelsExpandDepth': -1,
    'showExtensions': True,
    'showCommonExtensions': True
}

ERROR_SCHEMA = {
    "type": "object",
    "properties": {"error": {"type": "string"}}
}

MONTH_PARAMETERS = [
    {"name": "force", "in": "query", "required": False, "schema": {"type": "string", "default": "metropolitan"}},
    {"name": "date", "in": "query", "required": True, "schema": {"type": "string", "pattern": "^\\d{4}-\\d{2}$"}},
]

OPENAPI_SPEC = {
    "openapi": "3.0.0",
    "info": {"title": "Police Data Service", "version": "1.0.0"},
    "paths": {
        "/health": {
            "get": {
                "summary": "Health check",
                "responses": {"200": {"description": "OK"}}
            }
        },
        "/api/police-data": {
            "get": {
                "summary": "Get stop-and-search records for a force and month",
                "tags": ["Stop and Search"],
                "description": "Proxies https://data.police.uk/api/stops-force. Responses are cached in memory for 5 minutes per force/month. A month with no published data returns an empty list.",
                "parameters": MONTH_PARAMETERS,
                "responses": {
                    "200": {
                        "description": "Records for the month",
                        "content": {
                            "application/json": {
                                "example": {
                                    "data": [
                                        {
                                            "age_range": "18-24",
                                            "gender": "Male",
                                            "self_defined_ethnicity": "White - English/Welsh/Scottish/Northern Irish/British",
                                            "datetime": "2024-01-05T10:30:00+00:00",
                                            "type": "Person search",
                                            "outcome": "A no further action disposal",
                                            "object_of_search": "Controlled drugs",
                                            "location": {
                                                "latitude": "51.512044",
                                                "longitude": "-0.135271",
                                                "street": {"id": 1, "name": "On or near Regent Street"}
                                            }
                                        }
                                    ],
                                    "month": "2024-01",
                                    "total": 1,
                                    "fetched_at": "2024-02-01T12:00:00.000000Z"
                                }
                            }
                        }
                    },
                    "400": {"description": "Missing or invalid date", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "429": {"description": "Upstream rate limit", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "502": {"description": "Upstream error or invalid upstream response", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "503": {"description": "Could not connect to the upstream API", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "504": {"description": "Upstream request timed out", "content": {"application/json": {"schema": ERROR_SCHEMA}}}
                }
            },
            "post": {
                "summary": "Health check or clear the cache",
                "tags": ["Stop and Search"],
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {"action": {"type": "string", "enum": ["health-check", "clear-cache"]}}
                            }
                        }
                    }
                },
                "responses": {
                    "200": {"description": "Action performed"},
                    "400": {"description": "Invalid action or request body", "content": {"application/json": {"schema": ERROR_SCHEMA}}}
                }
            },
            "options": {
                "summary": "CORS preflight",
                "tags": ["Stop and Search"],
                "responses": {"200": {"description": "CORS headers only"}}
            }
        },
        "/api/police-data/stats": {
            "get": {
                "summary": "Aggregated statistics for a force and a month or range of months",
                "tags": ["Stop and Search"],
                "description": "Pass date for one month, or from and to for a range (at most 36 months). Months in a range that fail upstream are skipped and listed in failedMonths.",
                "parameters": [
                    {"name": "force", "in": "query", "required": False, "schema": {"type": "string", "default": "metropolitan"}},
                    {"name": "date", "in": "query", "required": False, "schema": {"type": "string", "pattern": "^\\d{4}-\\d{2}$"}},
                    {"name": "from", "in": "query", "required": False, "schema": {"type": "string", "pattern": "^\\d{4}-\\d{2}$"}},
                    {"name": "to", "in": "query", "required": False, "schema": {"type": "string", "pattern": "^\\d{4}-\\d{2}$"}},
                    {"name": "default_label", "in": "query", "required": False, "schema": {"type": "string", "default": "Unknown"}}
                ],
                "responses": {
                    "200": {"description": "Totals, grouped counts, date range and monthly trend"},
                    "400": {"description": "Missing or invalid date or range", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "429": {"description": "Upstream rate limit", "content": {"application/json": {"schema": ERROR_SCHEMA}}},
                    "502": {"description": "Upstream failure (for a range: every month failed)", "content": {"application/json": {"schema": ERROR_SCHEMA}}}
                }
            }
        },
        "/api/forces": {
            "get": {
                "summary": "List police forces",
                "tags": ["Stop and Search"],
                "responses": {
                    "200": {
                        "description": "Forces sorted by name",
                        "content": {"application/json": {"example": [{"id": "metropolitan", "name": "Metropolitan Police Service"}]}}
                    },
                    "502": {"description": "Upstream failure", "content": {"application/json": {"schema": ERROR_SCHEMA}}}
                }
            }
        }
    }
}


def create_app(settings=None, cache=None, client=None):
    """
    Build the Flask app.

    settings, cache and client can be passed in (tests do); otherwise they are
    created from the environment. The cache lives for as long as the app does;
    callers that own a cache tear it down themselves.
    """
    settings = settings or Settings.from_env()
    cache = cache if cache is not None else TTLCache(
        ttl_seconds=settings.cache_ttl_seconds,
        sweep_threshold=settings.cache_sweep_threshold,
    )
    client = client or PoliceApiClient(
        base_url=settings.api_base_url,
        timeout=settings.api_timeout,
        user_agent=settings.user_agent,
    )

    app = Flask(__name__)
    app.config["DEBUG"] = settings.debug
    app.extensions["police_cache"] = cache
    app.extensions["police_client"] = client

    # Make sure INFO-level logs show up
    app.logger.setLevel("INFO")

    # The proxy blueprints set their own fixed CORS headers; Flask CORS covers the rest
    CORS(app, resources={r"^/(?!api/police-data).*": {"origins": settings.cors_origins}})

    started_at = monotonic()
    app.register_blueprint(create_police_data_blueprint(cache, client, started_at, settings.default_force))
    app.register_blueprint(create_stats_blueprint(cache, client, settings.default_force))

    # Create and register the Swagger UI blueprint
    swaggerui_blueprint = get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config=SWAGGER_CONFIG
    )
    app.register_blueprint(swaggerui_blueprint)

    @app.route('/health', methods=['GET'])
    def health():
        """
        Health check for the service.
        Returns: {"status": "ok", "service": "police_data_service", "cache_size": int}
        """
        return jsonify({
            "status": "ok",
            "service": "police_data_service",
            "cache_size": cache.size()
        })

    @app.route('/swagger.json', methods=['GET'])
    def swagger_spec():
        """
        Open API spec for the service endpoints.
        """
        return jsonify(OPENAPI_SPEC)

    # Error handler for 404
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    # Error handler for 500
    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Unhandled error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()

# Only the process-wide app clears its cache on exit
atexit.register(app.extensions["police_cache"].teardown)

if __name__ == '__main__':
    settings = Settings.from_env()
    logger.info("The police data service has started.")
    app.run(host='0.0.0.0', port=settings.port, debug=settings.debug)
