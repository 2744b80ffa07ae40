#!/usr/bin/env python3
"""
Seed data script for testing the expense tracker application.
Creates sample expenses for one user, optionally clearing existing ones first.
"""

import boto3
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid
import random

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.dates import to_iso
from shared.dynamodb import DynamoDBClient
from shared.validators import ExpenseCategory, is_valid_id
from expenses.repository import ExpenseRepository


SAMPLE_TITLES = {
    ExpenseCategory.GROCERIES: ['Weekly groceries', 'Farmers market', 'Bakery run', 'Supermarket'],
    ExpenseCategory.LEISURE: ['Cinema tickets', 'Concert', 'Streaming subscription', 'Board game night'],
    ExpenseCategory.ELECTRONICS: ['Headphones', 'Phone charger', 'Keyboard', 'USB hub'],
    ExpenseCategory.UTILITIES: ['Electricity bill', 'Water bill', 'Internet', 'Phone plan'],
    ExpenseCategory.CLOTHING: ['Running shoes', 'Winter jacket', 'T-shirts', 'Jeans'],
    ExpenseCategory.HEALTH: ['Pharmacy', 'Dentist visit', 'Gym membership', 'Vitamins'],
    ExpenseCategory.OTHERS: ['Gift', 'Post office', 'Parking', 'Miscellaneous'],
}


def get_expenses_table_name(stack_name='expense-tracker-aws'):
    """Get the expenses table name from the CloudFormation stack."""
    cf = boto3.client('cloudformation')

    try:
        response = cf.describe_stacks(StackName=stack_name)
        for output in response['Stacks'][0]['Outputs']:
            if 'Expenses' in output['OutputKey'] and 'Table' in output['OutputKey']:
                return output['OutputValue']
    except Exception as e:
        print(f"Error getting table name from stack: {e}")

    print("Using default table name...")
    return f'{stack_name}-expenses'


def build_expenses(user_id, num_expenses=50, days=60):
    """Build sample expense items spread over the last `days` days."""
    now = datetime.now(timezone.utc)
    expenses = []

    for _ in range(num_expenses):
        category = random.choice(list(ExpenseCategory))
        created = now - timedelta(
            days=random.randint(0, days),
            seconds=random.randint(0, 86399)
        )

        expenses.append({
            'user_id': user_id,
            'expense_id': str(uuid.uuid4()),
            'title': random.choice(SAMPLE_TITLES[category]),
            'amount': Decimal(str(round(random.uniform(5.0, 200.0), 2))),
            'category': category.value,
            'created_at': to_iso(created),
            'updated_at': to_iso(created),
        })

    return expenses


def main():
    """Main function."""
    print("=" * 50)
    print("Expense Tracker - Seed Data Script")
    print("=" * 50)

    # Get stack name
    stack_name = input("Enter stack name (default: expense-tracker-aws): ").strip()
    if not stack_name:
        stack_name = 'expense-tracker-aws'

    table_name = os.environ.get('EXPENSES_TABLE') or get_expenses_table_name(stack_name)
    print(f"\nExpenses table: {table_name}")

    # Get user ID
    user_id = input("\nEnter user ID (Cognito sub) to seed data for: ").strip()
    if not is_valid_id(user_id):
        print("Error: a valid user ID is required")
        sys.exit(1)

    # Get number of expenses
    num_expenses = input("Enter number of expenses to create (default: 50): ").strip()
    num_expenses = int(num_expenses) if num_expenses else 50

    table = DynamoDBClient(table_name)
    repository = ExpenseRepository(table)

    existing = repository.count_by_user_id(user_id)
    if existing:
        answer = input(f"User already has {existing} expenses. Delete them first? [y/N]: ").strip()
        if answer.lower() == 'y':
            deleted = repository.delete_all_by_user_id(user_id)
            print(f"Deleted {deleted} expenses")

    print(f"\nCreating {num_expenses} sample expenses...")
    expenses = build_expenses(user_id, num_expenses)
    table.batch_write(expenses)

    print("\n" + "=" * 50)
    print("Data seeding complete!")
    print("=" * 50)
    print(f"\nCreated {len(expenses)} expenses for user: {user_id}")
    print("Cached listings for this user expire within 30 minutes.")


if __name__ == '__main__':
    main()
