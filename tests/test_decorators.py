import pytest
from flask import Flask

from core.protocol import ValidationError
from services import decorators
from services.decorators import json_endpoint, rate_limit, require_api_key
from services.ratelimit import RateLimiter


@pytest.fixture()
def app_client():
    decorators._rate_limiter.reset()
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["API_KEYS"] = ["alpha", "beta"]
    app.config["X_API_KEYS"] = {"alpha", "beta"}

    @app.route("/json")
    @json_endpoint
    def json_view():
        return {"status": "ok"}

    @app.route("/json-error")
    @json_endpoint
    def json_error():
        raise ValueError("bad input")

    @app.route("/json-validation")
    @json_endpoint
    def json_validation():
        raise ValidationError("steps must be an array", path="steps")

    @app.route("/json-status")
    @json_endpoint
    def json_status():
        return {"created": True}, 201, {"X-Extra": "1"}

    @app.route("/limited")
    @rate_limit(limit=1, window_seconds=60)
    @json_endpoint
    def limited():
        return {"message": "allowed"}

    @app.route("/secure")
    @require_api_key
    @json_endpoint
    def secure():
        return {"secure": True}

    return app.test_client()


def test_json_endpoint_success(app_client):
    response = app_client.get("/json")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_json_endpoint_handles_value_error(app_client):
    response = app_client.get("/json-error")
    assert response.status_code == 400
    assert response.get_json()["error"] == "bad input"


def test_json_endpoint_reports_validation_path(app_client):
    response = app_client.get("/json-validation")
    assert response.status_code == 400
    assert response.get_json() == {"error": "steps must be an array", "path": "steps"}


def test_json_endpoint_passes_status_and_headers(app_client):
    response = app_client.get("/json-status")
    assert response.status_code == 201
    assert response.headers["X-Extra"] == "1"


def test_rate_limit_blocks_second_request(app_client):
    first = app_client.get("/limited")
    assert first.status_code == 200
    second = app_client.get("/limited")
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) >= 1


def test_require_api_key_allows_known_key(app_client):
    response = app_client.get("/secure", headers={"X-API-Key": "alpha"})
    assert response.status_code == 200


def test_require_api_key_rejects_unknown_key(app_client):
    response = app_client.get("/secure", headers={"X-API-Key": "gamma"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "ApiKey"
    assert app_client.get("/secure").status_code == 401


def test_rate_limiter_window_expires():
    now = [0.0]
    limiter = RateLimiter(clock=lambda: now[0])
    assert limiter.check_allow("caller", limit=1, window_seconds=10)
    assert not limiter.check_allow("caller", limit=1, window_seconds=10)
    now[0] = 4.0
    assert limiter.retry_after("caller", 10) == 6
    now[0] = 10.0
    assert limiter.check_allow("caller", limit=1, window_seconds=10)
