"""Reference data source for organizational units."""
import logging
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import OrganizationalUnit

logger = logging.getLogger(__name__)


class DynamoDBUnitRepository:
    """Reads the unit reference table (unit_id, name, region_id, region_code)."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

    def load_units(self) -> List[OrganizationalUnit]:
        """
        Scan every unit in the reference table.

        Raises:
            ClientError, BotoCoreError: If the scan fails; no partial result is returned
        """
        try:
            response = self.table.scan()
            items = response.get('Items', [])
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(ExclusiveStartKey=response['LastEvaluatedKey'])
                items.extend(response.get('Items', []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error loading reference units from {self.table_name}: {e}")
            raise

        units = []
        for item in items:
            if not item.get('unit_id') or not item.get('name'):
                logger.warning(f"Skipping incomplete unit item: {item}")
                continue
            units.append(OrganizationalUnit(
                id=item['unit_id'],
                name=item['name'],
                region_id=item.get('region_id'),
                region_code=item.get('region_code')
            ))

        logger.info(f"Loaded {len(units)} units from {self.table_name}")
        return units
