"""Expense repository backed by DynamoDB."""

import os
import uuid
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from boto3.dynamodb.conditions import Key, Attr

from shared.dynamodb import DynamoDBClient
from shared.dates import to_iso, utc_now
from shared.exceptions import DatabaseError
from shared.validators import is_valid_id, validate_id
from expenses.models import (
    CategoryBreakdown,
    Expense,
    ExpenseCreate,
    ExpenseFilter,
    ExpenseSummary,
    ExpenseUpdate,
)

logger = logging.getLogger(__name__)

# Both key attributes must exist, so the write only touches an item
# stored under this exact (user_id, expense_id) pair.
OWNED_ITEM_CONDITION = 'attribute_exists(user_id) AND attribute_exists(expense_id)'


def _newest_first(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Ties on created_at fall back to expense_id so pages never overlap
    return sorted(
        items,
        key=lambda item: (item.get('created_at', ''), item.get('expense_id', '')),
        reverse=True
    )


def _created_between(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
):
    if start_date and end_date:
        return Attr('created_at').between(to_iso(start_date), to_iso(end_date))
    if start_date:
        return Attr('created_at').gte(to_iso(start_date))
    if end_date:
        return Attr('created_at').lte(to_iso(end_date))
    return None


class ExpenseRepository:
    """Data access for expense items."""

    def __init__(self, expenses_table: Optional[DynamoDBClient] = None):
        """
        Initialize expense repository.

        Args:
            expenses_table: Table client (default: table named by EXPENSES_TABLE)
        """
        self.expenses_table = expenses_table or DynamoDBClient(os.environ.get('EXPENSES_TABLE'))

    def create(self, user_id: str, data: ExpenseCreate) -> Expense:
        """
        Create a new expense.

        Args:
            user_id: Owning user ID
            data: Validated expense fields

        Returns:
            The stored expense, read back from the table

        Raises:
            InvalidIdentifierError: If user_id is malformed
            DatabaseError: If the write or the read-back fails
        """
        validate_id(user_id, "user ID")

        now = to_iso(utc_now())
        expense_id = str(uuid.uuid4())
        item = {
            'user_id': user_id,
            'expense_id': expense_id,
            'title': data.title,
            'amount': data.amount,
            'category': data.category.value,
            'created_at': now,
            'updated_at': now,
        }
        if data.description is not None:
            item['description'] = data.description

        self.expenses_table.put_item(
            item,
            condition_expression='attribute_not_exists(expense_id)'
        )

        created = self.find_by_id_and_user_id(expense_id, user_id)
        if not created:
            logger.error(f"Expense {expense_id} missing after insert for user {user_id}")
            raise DatabaseError("Failed to retrieve created expense")

        logger.info(f"Expense created successfully: {expense_id} for user {user_id}")
        return created

    def find_by_id_and_user_id(self, expense_id: str, user_id: str) -> Optional[Expense]:
        """
        Get an expense owned by a user.

        Returns:
            The expense, or None if it does not exist for this user
        """
        if not is_valid_id(expense_id) or not is_valid_id(user_id):
            return None

        item = self.expenses_table.get_item({
            'user_id': user_id,
            'expense_id': expense_id
        })
        return Expense(**item) if item else None

    def find_with_filters(self, filters: ExpenseFilter) -> Tuple[List[Expense], int]:
        """
        Find a page of expenses with filters.

        Args:
            filters: User, optional date bounds and category, limit and offset

        Returns:
            Tuple of (page of expenses newest first, total matching count)
        """
        if not is_valid_id(filters.user_id):
            return [], 0

        filter_expr = _created_between(filters.start_date, filters.end_date)
        if filters.category:
            category_expr = Attr('category').eq(filters.category.value)
            filter_expr = category_expr if filter_expr is None else filter_expr & category_expr

        items = self._query_owned(filters.user_id, filter_expr)

        ordered = _newest_first(items)
        page = ordered[filters.offset:filters.offset + filters.limit]
        return [Expense(**item) for item in page], len(ordered)

    def update_by_id_and_user_id(
        self,
        expense_id: str,
        user_id: str,
        updates: ExpenseUpdate
    ) -> Optional[Expense]:
        """
        Update an expense owned by a user.

        Args:
            expense_id: Expense ID
            user_id: Owning user ID
            updates: Fields to replace

        Returns:
            Updated expense, or None if no expense matched both IDs
        """
        if not is_valid_id(expense_id) or not is_valid_id(user_id):
            return None

        update_parts = []
        expr_values = {}
        expr_names = {}

        for key, value in updates.changes().items():
            update_parts.append(f"#{key} = :{key}")
            expr_names[f'#{key}'] = key
            expr_values[f':{key}'] = value

        # Add updated_at timestamp
        update_parts.append("#updated_at = :updated_at")
        expr_names['#updated_at'] = 'updated_at'
        expr_values[':updated_at'] = to_iso(utc_now())

        update_expression = "SET " + ", ".join(update_parts)

        removed = updates.removals()
        for key in removed:
            expr_names[f'#{key}'] = key
        if removed:
            update_expression += " REMOVE " + ", ".join(f"#{key}" for key in removed)

        updated = self.expenses_table.update_item(
            key={'user_id': user_id, 'expense_id': expense_id},
            update_expression=update_expression,
            expression_values=expr_values,
            expression_names=expr_names,
            condition_expression=OWNED_ITEM_CONDITION
        )

        if not updated:
            return None

        logger.info(f"Expense updated successfully: {expense_id} for user {user_id}")
        return Expense(**updated)

    def delete_by_id_and_user_id(self, expense_id: str, user_id: str) -> bool:
        """
        Delete an expense owned by a user.

        Returns:
            True if exactly one expense was removed
        """
        if not is_valid_id(expense_id) or not is_valid_id(user_id):
            return False

        deleted = self.expenses_table.delete_item(
            {'user_id': user_id, 'expense_id': expense_id},
            condition_expression=OWNED_ITEM_CONDITION
        )

        if deleted:
            logger.info(f"Expense deleted successfully: {expense_id} for user {user_id}")
        return deleted

    def get_summary(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> ExpenseSummary:
        """
        Get totals and a per-category breakdown.

        Args:
            user_id: User ID
            start_date: Optional inclusive lower bound on created_at
            end_date: Optional inclusive upper bound on created_at

        Returns:
            Summary over every matching expense
        """
        if not is_valid_id(user_id):
            return ExpenseSummary()

        items = self._query_owned(user_id, _created_between(start_date, end_date))

        total_amount = Decimal('0')
        by_category = defaultdict(lambda: {'amount': Decimal('0'), 'count': 0})

        for item in items:
            amount = Decimal(str(item.get('amount', 0)))
            total_amount += amount

            # Group by category
            bucket = by_category[item['category']]
            bucket['amount'] += amount
            bucket['count'] += 1

        return ExpenseSummary(
            total_amount=float(total_amount),
            total_count=len(items),
            category_breakdown=[
                CategoryBreakdown(
                    category=category,
                    amount=float(totals['amount']),
                    count=totals['count']
                )
                for category, totals in by_category.items()
            ]
        )

    def get_recent_by_user_id(self, user_id: str, limit: int = 10) -> List[Expense]:
        """Get a user's most recently created expenses."""
        if not is_valid_id(user_id):
            return []

        items = _newest_first(self._query_owned(user_id))
        return [Expense(**item) for item in items[:limit]]

    def count_by_user_id(self, user_id: str) -> int:
        """Count every expense a user owns."""
        validate_id(user_id, "user ID")
        return self.expenses_table.count(key_condition_expression=Key('user_id').eq(user_id))

    def delete_all_by_user_id(self, user_id: str) -> int:
        """
        Delete every expense a user owns.

        Returns:
            Number of expenses deleted
        """
        if not is_valid_id(user_id):
            return 0

        items = self.expenses_table.query_all(
            key_condition_expression=Key('user_id').eq(user_id)
        )
        deleted = self.expenses_table.batch_delete([
            {'user_id': item['user_id'], 'expense_id': item['expense_id']}
            for item in items
        ])

        if deleted:
            logger.info(f"Deleted {deleted} expenses for user {user_id}")
        return deleted

    def health_check(self) -> Dict[str, str]:
        """Report whether the expenses table is reachable."""
        return self.expenses_table.health_check()

    def _query_owned(self, user_id: str, filter_expression: Optional[Any] = None) -> List[Dict[str, Any]]:
        # Strongly consistent base-table read; indexes only serve eventually consistent reads
        return self.expenses_table.query_all(
            key_condition_expression=Key('user_id').eq(user_id),
            filter_expression=filter_expression,
            consistent_read=True
        )
