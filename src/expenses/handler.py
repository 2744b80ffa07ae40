"""Lambda handler for expense operations."""

import json
import os
import logging
from typing import Dict, Any, Optional
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.response import (
    success_response,
    paginated_response,
    error_response,
    validation_error_response,
    not_found_response,
    unauthorized_response,
)
from shared.validators import VALID_CATEGORIES, validate_limit, validate_period, validate_required_fields
from shared.exceptions import ExpenseTrackerException, ValidationError, NotFoundError
from expenses.service import ExpenseService

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

_expense_service: Optional[ExpenseService] = None


def get_expense_service() -> ExpenseService:
    """Create the service once per container."""
    global _expense_service
    if _expense_service is None:
        _expense_service = ExpenseService()
    return _expense_service


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for expense operations.

    Handles:
    - POST /expenses - Create expense
    - GET /expenses - List expenses
    - GET /expenses/summary - Get expense summary
    - GET /expenses/recent - Get recent expenses
    - GET /expenses/{id} - Get expense details
    - PUT /expenses/{id} - Update expense
    - DELETE /expenses/{id} - Delete expense
    - GET /health - Store and cache status (public)
    - GET /categories - Available categories (public)

    Args:
        event: Lambda event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        # Log request
        logger.info(f"Request: {event.get('httpMethod')} {event.get('path')}")

        http_method = event.get('httpMethod')
        path = (event.get('path') or '').rstrip('/')

        # Public routes
        if path == '/health' and http_method == 'GET':
            return handle_health(get_expense_service())
        if path == '/categories' and http_method == 'GET':
            return success_response(data=VALID_CATEGORIES, message="Available expense categories")

        # Get user ID from Cognito authorizer
        user_id = get_user_id(event)
        if not user_id:
            return unauthorized_response()

        service = get_expense_service()

        # Route request
        if path == '/expenses' and http_method == 'POST':
            return handle_create(service, event, user_id)
        elif path == '/expenses' and http_method == 'GET':
            return handle_list(service, event, user_id)
        elif path == '/expenses/summary' and http_method == 'GET':
            return handle_summary(service, event, user_id)
        elif path == '/expenses/recent' and http_method == 'GET':
            return handle_recent(service, event, user_id)
        elif path.startswith('/expenses/') and http_method == 'GET':
            return handle_get(service, event, user_id)
        elif path.startswith('/expenses/') and http_method == 'PUT':
            return handle_update(service, event, user_id)
        elif path.startswith('/expenses/') and http_method == 'DELETE':
            return handle_delete(service, event, user_id)
        else:
            return error_response("Route not found", status_code=404, error_code="NOT_FOUND")

    except ValidationError as e:
        return validation_error_response(e.message)
    except NotFoundError as e:
        return not_found_response(e.message)
    except ExpenseTrackerException as e:
        logger.error(f"Application error: {str(e)}")
        return error_response(e.message, status_code=e.status_code)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_health(service: ExpenseService) -> Dict[str, Any]:
    """Handle health check. Unhealthy only when the table is unreachable."""
    health = service.health_check()

    if not health['healthy']:
        logger.error(f"Health check failed: {health}")
        return error_response(
            "Service unhealthy",
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
            details=health
        )

    return success_response(data=health, message="Service is healthy")


def handle_create(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Handle create expense."""
    body = parse_body(event)
    validate_required_fields(body, ['title', 'amount', 'category'])

    expense = service.create_expense(user_id, body)

    return success_response(
        data=expense,
        message="Expense created successfully",
        status_code=201
    )


def handle_list(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Handle list expenses.

    Args:
        service: Expense service
        event: Lambda event
        user_id: User ID

    Returns:
        API Gateway response
    """
    query_params = event.get('queryStringParameters') or {}
    validate_period(query_params.get('period'))

    result = service.get_expenses(user_id, query_params)

    return paginated_response(
        data=result['expenses'],
        page=result['page'],
        limit=result['limit'],
        total=result['total'],
        message="Expenses retrieved successfully"
    )


def handle_summary(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Handle get expense summary."""
    query_params = event.get('queryStringParameters') or {}
    validate_period(query_params.get('period'))

    summary = service.get_expense_summary(user_id, {
        key: value for key, value in query_params.items()
        if key in ('period', 'start_date', 'end_date', 'startDate', 'endDate')
    })

    return success_response(data=summary, message="Expense summary retrieved successfully")


def handle_recent(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Handle get recent expenses."""
    query_params = event.get('queryStringParameters') or {}
    limit = validate_limit(query_params.get('limit'), default=10)

    expenses = service.get_recent_expenses(user_id, limit)

    return success_response(data=expenses, message="Recent expenses retrieved successfully")


def handle_get(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Handle get expense details."""
    expense_id = get_expense_id(event)
    if not expense_id:
        return validation_error_response("Expense ID is required")

    expense = service.get_expense_by_id(expense_id, user_id)

    return success_response(data=expense, message="Expense retrieved successfully")


def handle_update(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Handle update expense.

    Args:
        service: Expense service
        event: Lambda event
        user_id: User ID

    Returns:
        API Gateway response
    """
    expense_id = get_expense_id(event)
    if not expense_id:
        return validation_error_response("Expense ID is required")

    body = parse_body(event)
    if not body:
        return validation_error_response("No updates provided")

    updated_expense = service.update_expense(expense_id, user_id, body)

    logger.info(f"Expense updated successfully: {expense_id}")

    return success_response(
        data=updated_expense,
        message="Expense updated successfully"
    )


def handle_delete(service: ExpenseService, event: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Handle delete expense."""
    expense_id = get_expense_id(event)
    if not expense_id:
        return validation_error_response("Expense ID is required")

    service.delete_expense(expense_id, user_id)

    logger.info(f"Expense deleted successfully: {expense_id}")

    return success_response(
        message="Expense deleted successfully"
    )


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse the JSON request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    try:
        body = json.loads(event.get('body') or '{}')
    except json.JSONDecodeError:
        raise ValidationError("Request body contains invalid JSON")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    return body


def get_expense_id(event: Dict[str, Any]) -> Optional[str]:
    """Extract the expense ID from path parameters."""
    path_params = event.get('pathParameters') or {}
    return path_params.get('id')


def get_user_id(event: Dict[str, Any]) -> Optional[str]:
    """
    Extract user ID from Cognito authorizer claims.

    Args:
        event: Lambda event

    Returns:
        User ID (sub claim)
    """
    request_context = event.get('requestContext') or {}
    authorizer = request_context.get('authorizer') or {}
    claims = authorizer.get('claims') or {}
    return claims.get('sub')
