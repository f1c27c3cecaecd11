"""DynamoDB manager for group, external id and event storage."""
import logging
import threading
import time
from typing import Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import EventCandidate, ExternalIdRow

logger = logging.getLogger(__name__)

TICKETDIVE_SERVICE = 'ticketdive'


class DynamoDBManager:
    """Manager for DynamoDB operations.

    boto3 resources are not thread-safe, so every thread gets its own
    session and resource.
    """

    GET_BATCH_SIZE = 100  # DynamoDB batch_get_item limit

    def __init__(
        self,
        events_table_name: str,
        external_ids_table_name: str,
        groups_table_name: str,
        region_name: Optional[str] = None
    ):
        """
        Initialize DynamoDB table names.

        Args:
            events_table_name: Table holding the next event per group
            external_ids_table_name: Table mapping groups to external services
            groups_table_name: Table holding group display names
            region_name: Optional AWS region (default: from the environment)
        """
        self.events_table_name = events_table_name
        self.external_ids_table_name = external_ids_table_name
        self.groups_table_name = groups_table_name
        self.region_name = region_name
        self._local = threading.local()
        logger.info(
            f"Initialized DynamoDBManager for tables: {events_table_name}, "
            f"{external_ids_table_name}, {groups_table_name}"
        )

    @property
    def dynamodb(self):
        """DynamoDB resource owned by the calling thread."""
        resource = getattr(self._local, 'dynamodb', None)
        if resource is None:
            session = boto3.session.Session(region_name=self.region_name)
            resource = session.resource('dynamodb')
            self._local.dynamodb = resource
        return resource

    @property
    def events_table(self):
        return self.dynamodb.Table(self.events_table_name)

    @property
    def external_ids_table(self):
        return self.dynamodb.Table(self.external_ids_table_name)

    def get_ticketdive_rows(self) -> List[ExternalIdRow]:
        """
        Retrieve all TicketDive external id rows using a Scan operation.

        Returns:
            List of ExternalIdRow objects
        """
        logger.info("Scanning external ids for TicketDive rows")
        scan_kwargs = {'FilterExpression': Attr('service').eq(TICKETDIVE_SERVICE)}

        try:
            response = self.external_ids_table.scan(**scan_kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.external_ids_table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning external ids table: {e}")
            raise

        rows = [
            ExternalIdRow(
                group_id=item['group_id'],
                external_id=item.get('external_id'),
                url=item.get('url')
            )
            for item in items
            if 'group_id' in item
        ]
        logger.info(f"Retrieved {len(rows)} TicketDive rows")
        return rows

    def get_group_names(self, group_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        """
        Look up Japanese display names for groups.

        Args:
            group_ids: Group ids to look up

        Returns:
            Dictionary mapping group id to name_ja (missing groups omitted)
        """
        group_ids = list(dict.fromkeys(group_ids))
        names = {}

        for i in range(0, len(group_ids), self.GET_BATCH_SIZE):
            batch = group_ids[i:i + self.GET_BATCH_SIZE]
            request = {
                self.groups_table_name: {
                    'Keys': [{'id': group_id} for group_id in batch]
                }
            }

            try:
                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    for item in response.get('Responses', {}).get(self.groups_table_name, []):
                        names[item['id']] = item.get('name_ja')
                    request = response.get('UnprocessedKeys') or None
            except ClientError as e:
                logger.error(f"Error reading groups table: {e}")
                raise

        return names

    def delete_group_events(self, group_id: str) -> int:
        """
        Delete every stored event for a group.

        Args:
            group_id: Owner key of the events

        Returns:
            Count of deleted events
        """
        query_kwargs = {
            'KeyConditionExpression': Key('group_id').eq(group_id),
            'ProjectionExpression': 'group_id, event_url'
        }

        try:
            response = self.events_table.query(**query_kwargs)
            keys = response.get('Items', [])
            while 'LastEvaluatedKey' in response:
                response = self.events_table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **query_kwargs
                )
                keys.extend(response.get('Items', []))

            with self.events_table.batch_writer() as writer:
                for key in keys:
                    writer.delete_item(
                        Key={'group_id': key['group_id'], 'event_url': key['event_url']}
                    )

        except ClientError as e:
            logger.error(f"Error deleting events for group {group_id}: {e}")
            raise

        logger.debug(f"Deleted {len(keys)} events for group {group_id}")
        return len(keys)

    def insert_group_event(self, group_id: str, event: EventCandidate) -> None:
        """
        Store an event for a group.

        Args:
            group_id: Owner key of the event
            event: EventCandidate to store
        """
        try:
            self.events_table.put_item(Item=self._event_to_item(group_id, event))
        except ClientError as e:
            logger.error(f"Error writing event for group {group_id}: {e}")
            raise

    def replace_group_event(self, group_id: str, event: Optional[EventCandidate]) -> None:
        """
        Replace the stored events of a group with at most one event.

        Args:
            group_id: Owner key of the events
            event: EventCandidate to store, or None to only clear
        """
        self.delete_group_events(group_id)
        if event is not None:
            self.insert_group_event(group_id, event)

    def get_group_events(self, group_id: str) -> List[EventCandidate]:
        """
        Retrieve stored events for a group.

        Args:
            group_id: Owner key of the events

        Returns:
            List of EventCandidate objects
        """
        try:
            response = self.events_table.query(
                KeyConditionExpression=Key('group_id').eq(group_id)
            )
        except ClientError as e:
            logger.error(f"Error reading events for group {group_id}: {e}")
            raise

        return [self._item_to_event(item) for item in response.get('Items', [])]

    def _event_to_item(self, group_id: str, event: EventCandidate) -> dict:
        return {
            'group_id': group_id,
            'event_url': event.event_url,
            'event_name': event.event_name,
            'event_date': event.event_date,
            'venue_name': event.venue_name,
            'last_updated': int(time.time())
        }

    def _item_to_event(self, item: dict) -> EventCandidate:
        return EventCandidate(
            event_name=item['event_name'],
            event_date=item['event_date'],
            venue_name=item['venue_name'],
            event_url=item['event_url']
        )
