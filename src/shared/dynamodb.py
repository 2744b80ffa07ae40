"""DynamoDB utilities and helper functions."""

import os
import boto3
from typing import Any, Dict, List, Optional
from decimal import Decimal
from botocore.exceptions import BotoCoreError, ClientError
import logging

from .exceptions import DatabaseError

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'


def _is_condition_failure(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


class DynamoDBClient:
    """DynamoDB client wrapper with common operations."""

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name

        # Support for LocalStack
        endpoint_url = os.environ.get('LOCALSTACK_ENDPOINT')
        if endpoint_url and os.environ.get('USE_LOCALSTACK', 'false').lower() == 'true':
            self.dynamodb = boto3.resource('dynamodb', endpoint_url=endpoint_url)
        else:
            self.dynamodb = boto3.resource('dynamodb')

        self.table = self.dynamodb.Table(table_name)

    def put_item(
        self,
        item: Dict[str, Any],
        condition_expression: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Put an item in the table.

        Args:
            item: Item to put
            condition_expression: Optional condition the write must satisfy

        Returns:
            The item that was put

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            # Convert floats to Decimal for DynamoDB
            item = self._python_to_dynamodb(item)
            kwargs = {'Item': item}
            if condition_expression:
                kwargs['ConditionExpression'] = condition_expression
            self.table.put_item(**kwargs)
            return item
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error putting item: {e}")
            raise DatabaseError(f"Failed to put item: {str(e)}")

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Get an item from the table.

        Args:
            key: Primary key of the item

        Returns:
            The item if found, None otherwise

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            response = self.table.get_item(Key=key, ConsistentRead=True)
            item = response.get('Item')
            if item:
                return self._dynamodb_to_python(item)
            return None
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error getting item: {e}")
            raise DatabaseError(f"Failed to get item: {str(e)}")

    def update_item(
        self,
        key: Dict[str, Any],
        update_expression: str,
        expression_values: Dict[str, Any],
        expression_names: Optional[Dict[str, str]] = None,
        condition_expression: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Update an item in the table.

        Args:
            key: Primary key of the item
            update_expression: Update expression
            expression_values: Expression attribute values
            expression_names: Optional expression attribute names
            condition_expression: Optional condition the item must satisfy

        Returns:
            Updated item, or None if the condition was not met

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            expression_values = self._python_to_dynamodb(expression_values)

            kwargs = {
                'Key': key,
                'UpdateExpression': update_expression,
                'ExpressionAttributeValues': expression_values,
                'ReturnValues': 'ALL_NEW'
            }

            if expression_names:
                kwargs['ExpressionAttributeNames'] = expression_names
            if condition_expression:
                kwargs['ConditionExpression'] = condition_expression

            response = self.table.update_item(**kwargs)
            return self._dynamodb_to_python(response['Attributes'])
        except (ClientError, BotoCoreError) as e:
            if condition_expression and _is_condition_failure(e):
                return None
            logger.error(f"Error updating item: {e}")
            raise DatabaseError(f"Failed to update item: {str(e)}")

    def delete_item(
        self,
        key: Dict[str, Any],
        condition_expression: Optional[str] = None
    ) -> bool:
        """
        Delete an item from the table.

        Args:
            key: Primary key of the item
            condition_expression: Optional condition the item must satisfy

        Returns:
            True if an item was removed, False otherwise

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            kwargs = {'Key': key, 'ReturnValues': 'ALL_OLD'}
            if condition_expression:
                kwargs['ConditionExpression'] = condition_expression

            response = self.table.delete_item(**kwargs)
            return bool(response.get('Attributes'))
        except (ClientError, BotoCoreError) as e:
            if condition_expression and _is_condition_failure(e):
                return False
            logger.error(f"Error deleting item: {e}")
            raise DatabaseError(f"Failed to delete item: {str(e)}")

    def query(
        self,
        key_condition_expression: Any,
        filter_expression: Optional[Any] = None,
        index_name: Optional[str] = None,
        limit: Optional[int] = None,
        scan_forward: bool = True,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        consistent_read: bool = False
    ) -> Dict[str, Any]:
        """
        Query items from the table.

        Args:
            key_condition_expression: Key condition expression
            filter_expression: Optional filter expression
            index_name: Optional index name
            limit: Optional limit
            scan_forward: Sort order (default: True for ascending)
            exclusive_start_key: Optional pagination key
            consistent_read: Strongly consistent read (base table only)

        Returns:
            Dictionary with items and optional LastEvaluatedKey

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            kwargs = {
                'KeyConditionExpression': key_condition_expression,
                'ScanIndexForward': scan_forward
            }

            if filter_expression is not None:
                kwargs['FilterExpression'] = filter_expression
            if index_name:
                kwargs['IndexName'] = index_name
            if limit:
                kwargs['Limit'] = limit
            if exclusive_start_key:
                kwargs['ExclusiveStartKey'] = exclusive_start_key
            if consistent_read:
                kwargs['ConsistentRead'] = True

            response = self.table.query(**kwargs)

            return {
                'items': [self._dynamodb_to_python(item) for item in response.get('Items', [])],
                'last_evaluated_key': response.get('LastEvaluatedKey')
            }
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error querying items: {e}")
            raise DatabaseError(f"Failed to query items: {str(e)}")

    def query_all(
        self,
        key_condition_expression: Any,
        filter_expression: Optional[Any] = None,
        index_name: Optional[str] = None,
        scan_forward: bool = True,
        page_size: int = 100,
        consistent_read: bool = False
    ) -> List[Dict[str, Any]]:
        """
        Query every matching item, following pagination keys.

        Args:
            key_condition_expression: Key condition expression
            filter_expression: Optional filter expression
            index_name: Optional index name
            scan_forward: Sort order (default: True for ascending)
            page_size: Items read per request
            consistent_read: Strongly consistent read (base table only)

        Returns:
            List of all matching items

        Raises:
            DatabaseError: If any page fails
        """
        items = []
        last_key = None

        while True:
            result = self.query(
                key_condition_expression=key_condition_expression,
                filter_expression=filter_expression,
                index_name=index_name,
                limit=page_size,
                scan_forward=scan_forward,
                exclusive_start_key=last_key,
                consistent_read=consistent_read
            )

            items.extend(result['items'])
            last_key = result.get('last_evaluated_key')

            if not last_key:
                break

        return items

    def count(
        self,
        key_condition_expression: Any,
        filter_expression: Optional[Any] = None,
        index_name: Optional[str] = None
    ) -> int:
        """
        Count matching items without reading their attributes.

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            kwargs = {
                'KeyConditionExpression': key_condition_expression,
                'Select': 'COUNT'
            }
            if filter_expression is not None:
                kwargs['FilterExpression'] = filter_expression
            if index_name:
                kwargs['IndexName'] = index_name

            total = 0
            while True:
                response = self.table.query(**kwargs)
                total += response.get('Count', 0)
                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    return total
                kwargs['ExclusiveStartKey'] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error counting items: {e}")
            raise DatabaseError(f"Failed to count items: {str(e)}")

    def batch_write(self, items: List[Dict[str, Any]]) -> None:
        """
        Batch write items to the table.

        Args:
            items: List of items to write

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            with self.table.batch_writer() as batch:
                for item in items:
                    batch.put_item(Item=self._python_to_dynamodb(item))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error batch writing items: {e}")
            raise DatabaseError(f"Failed to batch write items: {str(e)}")

    def batch_delete(self, keys: List[Dict[str, Any]]) -> int:
        """
        Batch delete items by primary key.

        Args:
            keys: Primary keys of the items to delete

        Returns:
            Number of delete requests sent

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            with self.table.batch_writer() as batch:
                for key in keys:
                    batch.delete_item(Key=key)
            return len(keys)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error batch deleting items: {e}")
            raise DatabaseError(f"Failed to batch delete items: {str(e)}")

    def health_check(self) -> Dict[str, str]:
        """
        Describe the table to confirm it is reachable.

        Returns:
            Dictionary with connection status and table status
        """
        try:
            self.table.load()
            return {'status': 'connected', 'table_status': self.table.table_status}
        except (ClientError, BotoCoreError) as e:
            logger.error(f"DynamoDB health check failed: {e}")
            return {'status': 'disconnected'}

    @staticmethod
    def _python_to_dynamodb(obj: Any) -> Any:
        """Convert Python objects to DynamoDB compatible format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._python_to_dynamodb(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._python_to_dynamodb(item) for item in obj]
        elif isinstance(obj, float):
            return Decimal(str(obj))
        return obj

    @staticmethod
    def _dynamodb_to_python(obj: Any) -> Any:
        """Convert DynamoDB objects to Python format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._dynamodb_to_python(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._dynamodb_to_python(item) for item in obj]
        elif isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        return obj
