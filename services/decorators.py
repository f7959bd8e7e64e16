"""Reusable decorators that keep route logic tidy."""
from __future__ import annotations

import hmac
from functools import wraps
from typing import Any, Callable, Optional

from flask import current_app, g, jsonify, request

from core.protocol import ValidationError

from .ratelimit import RateLimiter

JsonResult = tuple[Any, int] | tuple[Any, int, dict[str, Any]] | Any

_rate_limiter = RateLimiter()


def _api_key_pool() -> set[str]:
    keys = current_app.config.get("X_API_KEYS")
    if isinstance(keys, (set, list, tuple)):
        return {str(k) for k in keys if str(k)}
    fallback = current_app.config.get("API_KEYS")
    if isinstance(fallback, (list, tuple, set)):
        return {str(k) for k in fallback if str(k)}
    return set()


def _unauthorized_response():
    return jsonify({"error": "Unauthorized"}), 401, {"WWW-Authenticate": "ApiKey"}


def json_endpoint(func: Callable[..., JsonResult]) -> Callable[..., Any]:
    """Ensure JSON responses with standard error handling."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            result = func(*args, **kwargs)
        except ValidationError as exc:
            return jsonify({"error": str(exc), "path": exc.path}), 400
        except ValueError as exc:  # validation error
            return jsonify({"error": str(exc)}), 400
        except Exception as exc:  # pragma: no cover - log unexpected errors
            current_app.logger.exception(
                "Unhandled error in JSON endpoint", exc_info=exc
            )
            return jsonify({"error": "Internal server error"}), 500

        if isinstance(result, tuple):
            payload = result[0]
            status = result[1]
            headers = result[2] if len(result) > 2 else None
            response = jsonify(payload)
            if headers:
                for key, value in headers.items():
                    response.headers[key] = value
            return response, status
        return jsonify(result)

    return wrapper


def rate_limit(
    limit: int | None = None,
    window_seconds: int | None = None,
    identifier: Optional[Callable[[], str]] = None,
):
    """Enforce an in-memory request quota.

    Without explicit values the quota comes from the app's
    ``RATE_LIMIT_REQUESTS`` / ``RATE_LIMIT_WINDOW`` settings.
    """

    def decorator(func: Callable[..., JsonResult]):
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            quota = limit or int(current_app.config.get("RATE_LIMIT_REQUESTS", 20))
            window = window_seconds or int(current_app.config.get("RATE_LIMIT_WINDOW", 60))
            ident = identifier() if callable(identifier) else None
            if not ident:
                ident = (
                    request.headers.get("X-API-Key")
                    or request.remote_addr
                    or "anonymous"
                )
            ident = f"{request.endpoint}:{ident}"

            if not _rate_limiter.check_allow(ident, limit=quota, window_seconds=window):
                retry_after = _rate_limiter.retry_after(ident, window)
                return (
                    jsonify({"error": "Too many requests"}),
                    429,
                    {"Retry-After": str(retry_after)},
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator


def require_api_key(func: Callable[..., JsonResult]) -> Callable[..., Any]:
    """Protect endpoints that launch a browser behind API key authentication."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        keys = _api_key_pool()
        provided = request.headers.get("X-API-Key", "")
        if not keys or not provided:
            return _unauthorized_response()

        for key in keys:
            if hmac.compare_digest(provided, key):
                g.current_api_key = provided
                return func(*args, **kwargs)
        return _unauthorized_response()

    return wrapper
