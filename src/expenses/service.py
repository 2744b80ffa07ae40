"""Expense service: cached listing, summaries and cache-invalidating mutations."""

import os
import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from shared.cache import CacheClient, expenses_cache_key, expense_summary_cache_key
from shared.dates import PERIOD_CUSTOM, format_date, get_date_range, to_iso, utc_now
from shared.exceptions import CacheError, DatabaseError, ExpenseTrackerException, NotFoundError
from expenses.models import (
    ExpenseCreate,
    ExpenseFilter,
    ExpenseQuery,
    ExpenseUpdate,
    parse_payload,
)
from expenses.repository import ExpenseRepository

logger = logging.getLogger(__name__)

EXPENSE_CACHE_TTL = int(os.environ.get('EXPENSE_CACHE_TTL', 1800))  # 30 minutes
SUMMARY_CACHE_TTL = int(os.environ.get('SUMMARY_CACHE_TTL', 3600))  # 1 hour


def _cache_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a bound as YYYY-MM-DDTHH:MM:SS.mmmZ for cache keys."""
    if value is None:
        return None
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


def listing_cache_key(filters: ExpenseFilter) -> str:
    """
    Derive the cache key for a listing filter.

    Only bounds, category, limit and offset are encoded, in fixed order and
    with unset fields omitted, so equal filters always map to the same key.
    """
    fields = {
        'startDate': _cache_timestamp(filters.start_date),
        'endDate': _cache_timestamp(filters.end_date),
        'category': filters.category.value if filters.category else None,
        'limit': filters.limit,
        'offset': filters.offset,
    }
    canonical = json.dumps(
        {name: value for name, value in fields.items() if value is not None},
        separators=(',', ':')
    )
    return expenses_cache_key(filters.user_id, canonical)


def summary_cache_key(user_id: str, query: ExpenseQuery, date_range) -> str:
    """Derive the cache key for a summary request."""
    period = query.period or None
    if period == PERIOD_CUSTOM and date_range is not None:
        # Distinct custom ranges must not share an entry
        period = (
            f"{PERIOD_CUSTOM}:{format_date(date_range.start_date)}"
            f":{format_date(date_range.end_date)}"
        )
    return expense_summary_cache_key(user_id, period)


class ExpenseService:
    """Service for querying, summarizing and mutating expenses."""

    def __init__(
        self,
        repository: Optional[ExpenseRepository] = None,
        cache: Optional[CacheClient] = None
    ):
        """
        Initialize expense service.

        Args:
            repository: Expense repository (default: built from EXPENSES_TABLE)
            cache: Cache client (default: built from REDIS_URL)
        """
        self.repository = repository or ExpenseRepository()
        self.cache = cache or CacheClient()

    def create_expense(self, user_id: str, expense_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new expense.

        Args:
            user_id: User ID
            expense_data: Raw expense fields (title, description, amount, category)

        Returns:
            Created expense

        Raises:
            ValidationError: If the fields or user ID are invalid
            DatabaseError: If the expense could not be stored
        """
        data = expense_data if isinstance(expense_data, ExpenseCreate) else parse_payload(ExpenseCreate, expense_data)

        try:
            expense = self.repository.create(user_id, data)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error creating expense for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to create expense")

        self._invalidate_user_caches(user_id)

        logger.info(f"Expense created: {expense.expense_id} for user {user_id}")
        return expense.to_response()

    def get_expenses(self, user_id: str, query_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        List expenses with filters and pagination.

        Args:
            user_id: User ID
            query_params: period, start_date, end_date, category, page, limit

        Returns:
            Dictionary with expenses, total, page and limit
        """
        query = self._parse_query(query_params)
        date_range = get_date_range(query.period, query.start_date, query.end_date) if query.period else None

        filters = ExpenseFilter(
            user_id=user_id,
            start_date=date_range.start_date if date_range else None,
            end_date=date_range.end_date if date_range else None,
            category=query.category,
            limit=query.limit,
            offset=query.offset
        )

        cache_key = listing_cache_key(filters)
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for expenses: user {user_id}")
            return cached

        try:
            expenses, total = self.repository.find_with_filters(filters)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error getting expenses for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to get expenses")

        result = {
            'expenses': [expense.to_response() for expense in expenses],
            'total': total,
            'page': query.page,
            'limit': query.limit,
        }

        self._set_cached(cache_key, result, EXPENSE_CACHE_TTL)
        return result

    def get_expense_by_id(self, expense_id: str, user_id: str) -> Dict[str, Any]:
        """
        Get a single expense owned by the user.

        Raises:
            NotFoundError: If the expense does not exist for this user
        """
        try:
            expense = self.repository.find_by_id_and_user_id(expense_id, user_id)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error getting expense {expense_id} for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to get expense")

        if not expense:
            raise NotFoundError("Expense not found")

        return expense.to_response()

    def update_expense(
        self,
        expense_id: str,
        user_id: str,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update an expense owned by the user.

        Args:
            expense_id: Expense ID
            user_id: User ID
            updates: Fields to replace

        Returns:
            Updated expense

        Raises:
            ValidationError: If the updates are invalid
            NotFoundError: If the expense does not exist for this user
        """
        changes = updates if isinstance(updates, ExpenseUpdate) else parse_payload(ExpenseUpdate, updates)

        try:
            updated = self.repository.update_by_id_and_user_id(expense_id, user_id, changes)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error updating expense {expense_id} for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to update expense")

        if not updated:
            raise NotFoundError("Expense not found")

        self._invalidate_user_caches(user_id)

        logger.info(f"Expense updated: {expense_id} for user {user_id}")
        return updated.to_response()

    def delete_expense(self, expense_id: str, user_id: str) -> None:
        """
        Delete an expense owned by the user.

        Raises:
            NotFoundError: If the expense does not exist for this user
        """
        try:
            deleted = self.repository.delete_by_id_and_user_id(expense_id, user_id)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error deleting expense {expense_id} for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to delete expense")

        if not deleted:
            raise NotFoundError("Expense not found")

        self._invalidate_user_caches(user_id)

        logger.info(f"Expense deleted: {expense_id} for user {user_id}")

    def get_expense_summary(self, user_id: str, query_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Get totals and per-category breakdown.

        Args:
            user_id: User ID
            query_params: period, start_date, end_date

        Returns:
            Summary with total_amount, total_count and category_breakdown
        """
        query = self._parse_query(query_params)
        date_range = get_date_range(query.period, query.start_date, query.end_date) if query.period else None

        cache_key = summary_cache_key(user_id, query, date_range)
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for expense summary: user {user_id}")
            return cached

        try:
            summary = self.repository.get_summary(
                user_id,
                date_range.start_date if date_range else None,
                date_range.end_date if date_range else None
            )
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error getting expense summary for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to get expense summary")

        result = summary.to_response()
        self._set_cached(cache_key, result, SUMMARY_CACHE_TTL)
        return result

    def get_recent_expenses(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Get the most recent expenses. Not cached."""
        try:
            expenses = self.repository.get_recent_by_user_id(user_id, limit)
        except ExpenseTrackerException:
            raise
        except Exception as e:
            logger.error(f"Error getting recent expenses for user {user_id}: {e}", exc_info=True)
            raise DatabaseError("Failed to get recent expenses")

        return [expense.to_response() for expense in expenses]

    @staticmethod
    def _parse_query(query_params: Optional[Dict[str, Any]]) -> ExpenseQuery:
        if isinstance(query_params, ExpenseQuery):
            return query_params
        return parse_payload(ExpenseQuery, dict(query_params or {}))

    def _get_cached(self, cache_key: str) -> Optional[Any]:
        try:
            return self.cache.get_json(cache_key)
        except CacheError as e:
            logger.warning(f"Failed to read cache key {cache_key}: {e}")
            return None

    def _set_cached(self, cache_key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self.cache.set_json(cache_key, value, ttl_seconds)
        except CacheError as e:
            logger.warning(f"Failed to cache {cache_key}: {e}")

    def _invalidate_user_caches(self, user_id: str) -> None:
        """Drop every cached listing and summary for the user."""
        for pattern in (f"{expenses_cache_key(user_id)}*", f"{expense_summary_cache_key(user_id)}*"):
            try:
                self.cache.delete_pattern(pattern)
            except CacheError as e:
                logger.warning(f"Failed to invalidate {pattern} for user {user_id}: {e}")

    def health_check(self) -> Dict[str, Any]:
        """
        Check the store and the cache.

        Returns:
            Dictionary with overall healthy flag and per-dependency status
        """
        database = self.repository.health_check()
        redis_status = self.cache.health_check()
        return {
            'healthy': database.get('status') == 'connected',
            'timestamp': to_iso(utc_now()),
            'database': database,
            'redis': redis_status,
        }
