"""Integration tests for expense listing, summary and cache invalidation."""

import pytest
import uuid
from datetime import timedelta
from decimal import Decimal
from moto import mock_aws
import boto3
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from shared.dates import to_iso, utc_now
from shared.dynamodb import DynamoDBClient
from shared.exceptions import InvalidIdentifierError, NotFoundError
from expenses.repository import ExpenseRepository
from expenses.service import ExpenseService

TABLE_NAME = 'test-expenses'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS Credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setenv('EXPENSES_TABLE', TABLE_NAME)
    monkeypatch.setenv('USE_LOCALSTACK', 'false')


@pytest.fixture
def expenses_table(aws_credentials):
    """Create mock expenses table."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'user_id', 'KeyType': 'HASH'},
                {'AttributeName': 'expense_id', 'KeyType': 'RANGE'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'user_id', 'AttributeType': 'S'},
                {'AttributeName': 'expense_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def repository(expenses_table):
    return ExpenseRepository(DynamoDBClient(TABLE_NAME))


@pytest.fixture
def expense_service(repository, fake_cache):
    return ExpenseService(repository=repository, cache=fake_cache)


def put_expense(table, user_id, amount, category='Groceries', created_at=None, title='Seeded expense'):
    """Insert an expense row directly, bypassing the service."""
    created_at = created_at or to_iso(utc_now())
    item = {
        'user_id': user_id,
        'expense_id': str(uuid.uuid4()),
        'title': title,
        'amount': Decimal(str(amount)),
        'category': category,
        'created_at': created_at,
        'updated_at': created_at,
    }
    table.put_item(Item=item)
    return item


class TestExpenseSummaryFlow:
    """Summary aggregation against the table."""

    def test_week_summary_end_to_end(self, expense_service, user_id):
        """Test three new expenses show up in the weekly summary."""
        expense_service.create_expense(user_id, {'title': 'Milk and bread', 'amount': 10, 'category': 'Groceries'})
        expense_service.create_expense(user_id, {'title': 'Vegetables', 'amount': 20, 'category': 'Groceries'})
        expense_service.create_expense(user_id, {'title': 'HDMI cable', 'amount': 30, 'category': 'Electronics'})

        summary = expense_service.get_expense_summary(user_id, {'period': 'week'})

        assert summary['total_amount'] == 60.0
        assert summary['total_count'] == 3
        breakdown = {entry['category']: entry for entry in summary['category_breakdown']}
        assert breakdown['Groceries'] == {'category': 'Groceries', 'amount': 30.0, 'count': 2}
        assert breakdown['Electronics'] == {'category': 'Electronics', 'amount': 30.0, 'count': 1}

    def test_summary_totals_match_breakdown(self, expense_service, expenses_table, user_id):
        """Test totals always equal the sum of the category breakdown."""
        now = utc_now()
        for days, amount, category in [(1, 12.5, 'Health'), (3, 7.25, 'Leisure'), (20, 99.99, 'Clothing'), (200, 5, 'Others')]:
            put_expense(expenses_table, user_id, amount, category, to_iso(now - timedelta(days=days)))

        for period in ('week', 'month', '3months', None):
            summary = expense_service.get_expense_summary(user_id, {'period': period} if period else {})
            breakdown = summary['category_breakdown']
            assert summary['total_count'] == sum(entry['count'] for entry in breakdown)
            assert summary['total_amount'] == pytest.approx(sum(entry['amount'] for entry in breakdown))

        assert expense_service.get_expense_summary(user_id, {'period': 'week'})['total_count'] == 2
        assert expense_service.get_expense_summary(user_id, {'period': 'month'})['total_count'] == 3
        assert expense_service.get_expense_summary(user_id)['total_count'] == 4

    def test_custom_period_summary(self, expense_service, expenses_table, user_id):
        """Test a custom range includes both boundary days."""
        put_expense(expenses_table, user_id, 10, created_at='2024-01-01T00:00:00.000000+00:00')
        put_expense(expenses_table, user_id, 20, created_at='2024-01-31T23:59:59.000000+00:00')
        put_expense(expenses_table, user_id, 40, created_at='2024-02-01T00:00:00.000000+00:00')

        summary = expense_service.get_expense_summary(user_id, {
            'period': 'custom', 'startDate': '2024-01-01', 'endDate': '2024-01-31'
        })

        assert summary['total_count'] == 2
        assert summary['total_amount'] == 30.0

    def test_summary_empty_for_new_user(self, expense_service, user_id):
        summary = expense_service.get_expense_summary(user_id, {'period': 'month'})

        assert summary == {'total_amount': 0.0, 'total_count': 0, 'category_breakdown': []}


class TestCacheInvalidationFlow:
    """Mutations must never leave stale listings or summaries."""

    def test_create_refreshes_cached_summary(self, expense_service, fake_cache, user_id):
        """Test a cached summary reflects a newly created expense."""
        expense_service.create_expense(user_id, {'title': 'Power bill', 'amount': 45.5, 'category': 'Utilities'})
        before = expense_service.get_expense_summary(user_id, {'period': 'week'})
        assert fake_cache.keys(f'expense_summary:{user_id}*')

        expense_service.create_expense(user_id, {'title': 'Television', 'amount': 100, 'category': 'Electronics'})
        after = expense_service.get_expense_summary(user_id, {'period': 'week'})

        assert after['total_amount'] == before['total_amount'] + 100
        assert after['total_count'] == before['total_count'] + 1

    def test_update_refreshes_cached_listing(self, expense_service, user_id):
        """Test a cached listing reflects an update."""
        created = expense_service.create_expense(user_id, {'title': 'Jacket', 'amount': 80, 'category': 'Clothing'})
        expense_service.get_expenses(user_id, {})

        expense_service.update_expense(created['id'], user_id, {'amount': 65.5, 'title': 'Rain jacket'})
        listing = expense_service.get_expenses(user_id, {})

        assert listing['expenses'][0]['amount'] == 65.5
        assert listing['expenses'][0]['title'] == 'Rain jacket'

    def test_null_description_clears_it(self, expense_service, user_id):
        """Test an explicit null removes the stored description."""
        created = expense_service.create_expense(user_id, {
            'title': 'Headphones', 'amount': 120, 'category': 'Electronics', 'description': 'Gift'
        })
        expense_service.get_expenses(user_id, {})

        updated = expense_service.update_expense(created['id'], user_id, {'description': None})
        listing = expense_service.get_expenses(user_id, {})

        assert updated['description'] is None
        assert updated['title'] == 'Headphones'
        assert listing['expenses'][0]['description'] is None

    def test_delete_refreshes_cached_listing(self, expense_service, fake_cache, user_id):
        """Test a cached listing drops a deleted expense."""
        created = expense_service.create_expense(user_id, {'title': 'Board game', 'amount': 35, 'category': 'Leisure'})
        assert expense_service.get_expenses(user_id, {})['total'] == 1

        expense_service.delete_expense(created['id'], user_id)

        assert fake_cache.keys(f'expenses:{user_id}*') == []
        assert expense_service.get_expenses(user_id, {})['total'] == 0

    def test_cached_listing_matches_fresh_listing(self, expense_service, expenses_table, fake_cache, user_id):
        """Test a cache hit returns the same value as the first read."""
        put_expense(expenses_table, user_id, 19.99, 'Health')
        put_expense(expenses_table, user_id, 5.01, 'Groceries')

        fresh = expense_service.get_expenses(user_id, {'period': 'week', 'page': '1', 'limit': '10'})
        # Out-of-band write is invisible until the entry expires or is invalidated
        put_expense(expenses_table, user_id, 1, 'Others')
        cached = expense_service.get_expenses(user_id, {'period': 'week', 'page': '1', 'limit': '10'})

        assert cached == fresh
        assert cached['total'] == 2


class TestListingFlow:
    """Listing filters and pagination."""

    def test_pagination_is_deterministic(self, expense_service, expenses_table, user_id):
        """Test two pages of 20 equal one page of 40, with no overlap."""
        now = utc_now()
        for i in range(30):
            # Pairs of rows share a timestamp
            created_at = to_iso(now - timedelta(minutes=i // 2))
            put_expense(expenses_table, user_id, i + 1, created_at=created_at)

        page_one = expense_service.get_expenses(user_id, {'page': '1', 'limit': '20'})
        page_two = expense_service.get_expenses(user_id, {'page': '2', 'limit': '20'})
        combined = expense_service.get_expenses(user_id, {'page': '1', 'limit': '40'})

        ids = [e['id'] for e in page_one['expenses']] + [e['id'] for e in page_two['expenses']]
        assert len(page_one['expenses']) == 20
        assert len(page_two['expenses']) == 10
        assert len(set(ids)) == 30
        assert ids == [e['id'] for e in combined['expenses']]
        assert page_one['total'] == page_two['total'] == 30

    def test_listing_newest_first(self, expense_service, expenses_table, user_id):
        now = utc_now()
        oldest = put_expense(expenses_table, user_id, 1, created_at=to_iso(now - timedelta(days=2)))
        newest = put_expense(expenses_table, user_id, 2, created_at=to_iso(now))

        result = expense_service.get_expenses(user_id, {})

        assert [e['id'] for e in result['expenses']] == [newest['expense_id'], oldest['expense_id']]

    def test_listing_category_and_period(self, expense_service, expenses_table, user_id):
        """Test category and period filters combine."""
        now = utc_now()
        put_expense(expenses_table, user_id, 10, 'Groceries', to_iso(now - timedelta(days=1)))
        put_expense(expenses_table, user_id, 20, 'Groceries', to_iso(now - timedelta(days=40)))
        put_expense(expenses_table, user_id, 30, 'Health', to_iso(now - timedelta(days=1)))

        result = expense_service.get_expenses(user_id, {'period': 'month', 'category': 'Groceries'})

        assert result['total'] == 1
        assert result['expenses'][0]['amount'] == 10.0
        assert result['expenses'][0]['category'] == 'Groceries'

    def test_incomplete_custom_period_lists_everything(self, expense_service, expenses_table, user_id):
        """Test a custom period without dates applies no date filter."""
        put_expense(expenses_table, user_id, 10, created_at='2020-06-01T12:00:00.000000+00:00')
        put_expense(expenses_table, user_id, 20)

        result = expense_service.get_expenses(user_id, {'period': 'custom', 'startDate': '2024-01-01'})

        assert result['total'] == 2

    def test_invalid_user_id_lists_nothing(self, expense_service):
        result = expense_service.get_expenses('not-a-uuid', {})

        assert result['expenses'] == []
        assert result['total'] == 0

    def test_recent_expenses(self, expense_service, expenses_table, user_id):
        now = utc_now()
        for i in range(5):
            put_expense(expenses_table, user_id, i + 1, created_at=to_iso(now - timedelta(hours=i)))

        recent = expense_service.get_recent_expenses(user_id, 3)

        assert [e['amount'] for e in recent] == [1.0, 2.0, 3.0]


class TestOwnershipFlow:
    """Expenses are only visible to and mutable by their owner."""

    def test_other_user_cannot_access(self, expense_service, user_id, other_user_id):
        created = expense_service.create_expense(user_id, {
            'title': 'Headphones', 'description': 'Noise cancelling', 'amount': 150, 'category': 'Electronics'
        })

        with pytest.raises(NotFoundError):
            expense_service.get_expense_by_id(created['id'], other_user_id)
        with pytest.raises(NotFoundError):
            expense_service.update_expense(created['id'], other_user_id, {'amount': 1})
        with pytest.raises(NotFoundError):
            expense_service.delete_expense(created['id'], other_user_id)

        assert expense_service.get_expenses(other_user_id, {})['total'] == 0
        assert expense_service.get_expense_summary(other_user_id)['total_count'] == 0

        owned = expense_service.get_expense_by_id(created['id'], user_id)
        assert owned['amount'] == 150.0
        assert owned['description'] == 'Noise cancelling'

    def test_update_missing_expense_does_not_create(self, expense_service, expenses_table, user_id):
        missing_id = str(uuid.uuid4())

        with pytest.raises(NotFoundError):
            expense_service.update_expense(missing_id, user_id, {'title': 'Ghost expense'})

        assert expenses_table.get_item(Key={'user_id': user_id, 'expense_id': missing_id}).get('Item') is None

    def test_create_with_invalid_user_id(self, expense_service):
        with pytest.raises(InvalidIdentifierError):
            expense_service.create_expense('user123', {'title': 'Lunch', 'amount': 12, 'category': 'Groceries'})

    def test_created_expense_round_trips(self, expense_service, user_id):
        """Test the created record reads back with its generated fields."""
        created = expense_service.create_expense(user_id, {
            'title': '  Pharmacy  ', 'amount': '23.40', 'category': 'Health'
        })

        assert uuid.UUID(created['id'])
        assert created['title'] == 'Pharmacy'
        assert created['amount'] == 23.4
        assert created['created_at'] == created['updated_at']
        assert expense_service.get_expense_by_id(created['id'], user_id) == created


class TestRepositoryMaintenance:
    """Bulk helpers used by the seed script."""

    def test_count_and_delete_all(self, repository, expenses_table, user_id, other_user_id):
        for amount in (1, 2, 3):
            put_expense(expenses_table, user_id, amount)
        put_expense(expenses_table, other_user_id, 4)

        assert repository.count_by_user_id(user_id) == 3
        assert repository.delete_all_by_user_id(user_id) == 3
        assert repository.count_by_user_id(user_id) == 0
        assert repository.count_by_user_id(other_user_id) == 1

    def test_health_check_reports_table(self, repository):
        assert repository.health_check() == {'status': 'connected', 'table_status': 'ACTIVE'}
