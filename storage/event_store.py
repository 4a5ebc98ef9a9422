"""DynamoDB store for persisted agenda event records."""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import EventCategory, PersistedEventRecord, PersistedStatus, parse_start

logger = logging.getLogger(__name__)

# Attributes an update may touch, keyed by record field name.
UPDATABLE_FIELDS = {
    'title': 'title',
    'start': 'start_at',
    'category': 'category',
    'unit_id': 'unit_id',
}


class EventStoreError(Exception):
    """A single store write or read failed."""

    def __init__(self, feed_id: Optional[str], message: str):
        super().__init__(message)
        self.feed_id = feed_id


class DynamoDBEventStore:
    """Store for event records keyed by feed id. Records are never deleted."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region; defaults to the boto3 session region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def get_event(self, feed_id: str) -> Optional[PersistedEventRecord]:
        """
        Fetch a single record by feed id.

        Returns:
            PersistedEventRecord or None if no record exists
        """
        try:
            response = self.table.get_item(Key={'feed_id': feed_id})
        except (ClientError, BotoCoreError) as e:
            raise EventStoreError(feed_id, f"Error reading event {feed_id}: {e}") from e
        item = response.get('Item')
        return self._item_to_record(item) if item else None

    def get_all_events(self) -> Dict[str, PersistedEventRecord]:
        """
        Retrieve all records using a paginated Scan.

        Returns:
            Dictionary mapping feed_id to PersistedEventRecord objects

        Raises:
            ClientError, BotoCoreError: If the scan fails
        """
        logger.info("Scanning DynamoDB table for all event records")
        records = {}

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        for item in items:
            record = self._item_to_record(item)
            if record:
                records[record.feed_id] = record

        logger.info(f"Retrieved {len(records)} event records from DynamoDB")
        return records

    def get_terminal_events(self) -> List[PersistedEventRecord]:
        """
        Retrieve cancelled and removed records, most recent start first.

        These are the events pending review by an administrator.

        Returns:
            List of PersistedEventRecord objects sorted by start, descending

        Raises:
            ClientError, BotoCoreError: If the scan fails
        """
        terminal = [status.value for status in PersistedStatus if status.is_terminal]
        scan_kwargs = {'FilterExpression': Attr('status').is_in(terminal)}

        try:
            response = self.table.scan(**scan_kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error scanning DynamoDB table for terminal events: {e}")
            raise

        records = [record for record in map(self._item_to_record, items) if record]
        records.sort(key=_start_sort_key, reverse=True)

        logger.info(f"Retrieved {len(records)} cancelled or removed event records")
        return records

    def insert_event(self, record: PersistedEventRecord) -> None:
        """
        Insert a new record; fails if the feed id already exists.

        Raises:
            EventStoreError: If the write fails or the record exists
        """
        now = int(time.time())
        item = self._record_to_item(record)
        item['created_at'] = now
        item['updated_at'] = now
        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(feed_id)'
            )
        except (ClientError, BotoCoreError) as e:
            raise EventStoreError(record.feed_id, f"Error inserting event {record.feed_id}: {e}") from e

    def update_event(self, feed_id: str, changes: Dict[str, Any]) -> None:
        """
        Update fields of an active record.

        Args:
            feed_id: Key of the record
            changes: Mapping of record field name to new value; None removes the attribute

        Raises:
            EventStoreError: If the write fails or the record is not active
        """
        names = {'#status': 'status', '#updated_at': 'updated_at'}
        values: Dict[str, Any] = {
            ':active': PersistedStatus.ACTIVE.value,
            ':now': int(time.time()),
        }
        set_parts = ['#updated_at = :now']
        remove_parts = []

        for field_name, value in changes.items():
            attribute = UPDATABLE_FIELDS[field_name]
            names[f'#{attribute}'] = attribute
            if value is None:
                remove_parts.append(f'#{attribute}')
                continue
            if isinstance(value, EventCategory):
                value = value.value
            values[f':{attribute}'] = value
            set_parts.append(f'#{attribute} = :{attribute}')

        expression = 'SET ' + ', '.join(set_parts)
        if remove_parts:
            expression += ' REMOVE ' + ', '.join(remove_parts)

        try:
            self.table.update_item(
                Key={'feed_id': feed_id},
                UpdateExpression=expression,
                ConditionExpression='#status = :active',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except (ClientError, BotoCoreError) as e:
            raise EventStoreError(feed_id, f"Error updating event {feed_id}: {e}") from e

    def transition_status(self, feed_id: str, status: PersistedStatus) -> None:
        """
        Move an active record to a terminal status.

        Raises:
            ValueError: If ``status`` is not terminal
            EventStoreError: If the write fails or the record is not active
        """
        if not PersistedStatus.ACTIVE.can_transition_to(status):
            raise ValueError(f"Cannot transition to {status.value}")

        try:
            self.table.update_item(
                Key={'feed_id': feed_id},
                UpdateExpression='SET #status = :target, #updated_at = :now',
                ConditionExpression='#status = :active',
                ExpressionAttributeNames={'#status': 'status', '#updated_at': 'updated_at'},
                ExpressionAttributeValues={
                    ':target': status.value,
                    ':active': PersistedStatus.ACTIVE.value,
                    ':now': int(time.time()),
                }
            )
        except (ClientError, BotoCoreError) as e:
            raise EventStoreError(
                feed_id, f"Error moving event {feed_id} to {status.value}: {e}"
            ) from e

    def _item_to_record(self, item: dict) -> Optional[PersistedEventRecord]:
        """
        Convert DynamoDB item to PersistedEventRecord.

        Returns:
            PersistedEventRecord or None if conversion fails
        """
        try:
            return PersistedEventRecord(
                feed_id=item['feed_id'],
                title=item['title'],
                start=item['start_at'],
                category=EventCategory(item['category']),
                unit_id=item.get('unit_id'),
                status=PersistedStatus(item['status']),
                created_at=int(item['created_at']) if 'created_at' in item else None,
                updated_at=int(item['updated_at']) if 'updated_at' in item else None
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to PersistedEventRecord: {e}")
            return None

    def _record_to_item(self, record: PersistedEventRecord) -> dict:
        item = {
            'feed_id': record.feed_id,
            'title': record.title,
            'start_at': record.start,
            'category': record.category.value,
            'status': record.status.value,
        }
        if record.unit_id:
            item['unit_id'] = record.unit_id
        return item


def _start_sort_key(record: PersistedEventRecord) -> datetime:
    return parse_start(record.start) or datetime.min.replace(tzinfo=timezone.utc)
