"""Response utilities for Lambda functions."""

import json
import math
from typing import Any, Dict, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder for Decimal, datetime and enum values."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS"
}


def _build_response(
    body: Dict[str, Any],
    status_code: int,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    response_headers = dict(DEFAULT_HEADERS)
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, cls=DecimalEncoder)
    }


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create a standardized success response.

    Args:
        data: Response data
        message: Optional success message
        status_code: HTTP status code (default: 200)
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    body = {
        "success": True,
        "data": data
    }

    if message:
        body["message"] = message

    return _build_response(body, status_code, headers)


def paginated_response(
    data: Any,
    page: int,
    limit: int,
    total: int,
    message: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create a success response with pagination metadata.

    Args:
        data: Page of results
        page: 1-based page number
        limit: Page size
        total: Total number of matching results
        message: Optional success message

    Returns:
        Lambda proxy response dictionary
    """
    body = {
        "success": True,
        "data": data,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0
        }
    }

    if message:
        body["message"] = message

    return _build_response(body, 200)


def error_response(
    message: str,
    status_code: int = 500,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        message: Error message
        status_code: HTTP status code (default: 500)
        error_code: Optional error code
        details: Optional error details
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    body = {
        "success": False,
        "error": {
            "message": message,
            "code": error_code or f"ERROR_{status_code}"
        }
    }

    if details:
        body["error"]["details"] = details

    return _build_response(body, status_code, headers)


def validation_error_response(
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create a validation error response."""
    return error_response(
        message=message,
        status_code=400,
        error_code="VALIDATION_ERROR",
        details=details
    )


def not_found_response(message: str = "Resource not found") -> Dict[str, Any]:
    """Create a not found error response."""
    return error_response(
        message=message,
        status_code=404,
        error_code="NOT_FOUND"
    )


def unauthorized_response(message: str = "Unauthorized") -> Dict[str, Any]:
    """Create an unauthorized error response."""
    return error_response(
        message=message,
        status_code=401,
        error_code="UNAUTHORIZED"
    )
