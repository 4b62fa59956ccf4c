"""Helper functions for the application."""
from datetime import datetime, timezone
from flask import jsonify
from typing import Dict, Any

def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def isoformat(value: datetime) -> str:
    """Serialize a stored naive-UTC datetime with an explicit UTC marker."""
    if value is None:
        return None
    return value.isoformat() + 'Z'

def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code

def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code

def error_response(message: str, status_code: int = 400, data: Dict = None):
    """Return consistent error response."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code
