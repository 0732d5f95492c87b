"""
Shared utilities for the RevLedger API.

This module contains common utilities, decorators, and helpers
used across all API blueprints.
"""

import logging
import os
import secrets
from functools import wraps
from typing import Any

from flask import Flask, jsonify, request

from ledger_errors import LedgerError
from storage.base import StorageError

logger = logging.getLogger(__name__)

# ============================================================
# Security Configuration
# ============================================================

# API key for mutating routes (set via environment)
API_KEY = os.getenv("REVLEDGER_API_KEY", None)
# SECURITY: Default to requiring authentication for production safety
API_KEY_REQUIRED = os.getenv("REVLEDGER_REQUIRE_AUTH", "true").lower() == "true"

# Bounded parameters
MAX_RESULTS = 100
MAX_HOLDERS = 10_000
MAX_BATCH_SIZE = 10_000


# ============================================================
# Validation Utilities
# ============================================================

def bounded_limit(limit: int | None, max_limit: int = MAX_RESULTS) -> int | None:
    """Clamp a requested page size to 1..max_limit (None stays None)."""
    if limit is None:
        return None
    return max(1, min(int(limit), max_limit))


def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple[type, ...]],
    optional_fields: dict[str, type | tuple[type, ...]] | None = None,
    max_lengths: dict[str, int] | None = None
) -> tuple:
    """
    Validate JSON payload against a simple schema.

    SECURITY: Provides type and structure validation for API payloads
    to prevent type confusion.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types
        max_lengths: Dict mapping field names to maximum string or list lengths

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    def type_name(expected: type | tuple[type, ...]) -> str:
        if isinstance(expected, tuple):
            return " or ".join(t.__name__ for t in expected)
        return expected.__name__

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {type_name(expected_type)}"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if field_name in data and data[field_name] is not None:
                if not isinstance(data[field_name], expected_type):
                    return False, f"Field '{field_name}' must be of type {type_name(expected_type)}"

    if max_lengths:
        for field_name, max_len in max_lengths.items():
            value = data.get(field_name)
            if isinstance(value, (str, list)) and len(value) > max_len:
                return False, f"Field '{field_name}' exceeds maximum length of {max_len}"

    return True, None


# ============================================================
# Authentication Decorator
# ============================================================

def require_api_key(f):
    """Decorator to require API key authentication."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not API_KEY_REQUIRED:
            return f(*args, **kwargs)

        provided_key = request.headers.get("X-API-Key")

        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not API_KEY:
            return jsonify({
                "error": "Server API key not configured",
                "hint": "Set REVLEDGER_API_KEY environment variable"
            }), 503

        if not secrets.compare_digest(provided_key, API_KEY):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function


# ============================================================
# Error Handling
# ============================================================

def register_error_handlers(app: Flask) -> None:
    """Map ledger and storage exceptions to JSON responses."""

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error: LedgerError):
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError):
        logger.error("Storage failure", exc_info=error)
        return jsonify({"error": "Storage unavailable", "error_code": "StorageError"}), 503
