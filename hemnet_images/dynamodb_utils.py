#!/usr/bin/env python3
"""
DynamoDB utilities for deduplication and property record persistence
"""
from botocore.exceptions import BotoCoreError, ClientError

from hemnet_images.errors import StoreQueryError, StoreReadError, StoreWriteError
from hemnet_images.models import PROPERTY_ID_FIELD_NAME, PropertyRecord
from hemnet_images.util.aws import create_resource

# BatchGetItem accepts at most 100 keys per request
BATCH_GET_SIZE = 100


def setup_dynamodb_client(config, logger=None):
    """Setup DynamoDB resource and properties table reference"""
    dynamodb = create_resource('dynamodb', config)
    table = dynamodb.Table(config.table_name)

    if logger:
        logger.debug(f"DynamoDB table: {config.table_name} (region: {config.aws_region})")

    return dynamodb, table


def filter_existing_properties(candidates, dynamodb, table_name, logger=None):
    """
    Return the candidates whose property id is not yet stored.

    Args:
        candidates: dict of property_id -> listing_id
        dynamodb: boto3 DynamoDB service resource
        table_name: Properties table name

    Raises StoreQueryError if any batch fails or comes back incomplete, so a
    lookup failure is never mistaken for "not stored".
    """
    if not candidates:
        return {}

    property_ids = list(candidates)
    existing_ids = set()

    for i in range(0, len(property_ids), BATCH_GET_SIZE):
        batch_ids = property_ids[i:i + BATCH_GET_SIZE]
        request_items = {
            table_name: {
                'Keys': [{PROPERTY_ID_FIELD_NAME: property_id} for property_id in batch_ids],
                'ProjectionExpression': '#pid',
                'ExpressionAttributeNames': {'#pid': PROPERTY_ID_FIELD_NAME},
            }
        }

        try:
            response = dynamodb.batch_get_item(RequestItems=request_items)
        except (ClientError, BotoCoreError) as e:
            if logger:
                logger.error(f"Batch existence check failed: {e}")
            raise StoreQueryError(f"Batch existence check against {table_name} failed") from e

        if response.get('UnprocessedKeys'):
            raise StoreQueryError(
                f"Batch existence check against {table_name} left "
                f"{len(response['UnprocessedKeys'].get(table_name, {}).get('Keys', []))} keys unprocessed"
            )

        responses = response.get('Responses', {})
        if table_name not in responses:
            raise StoreQueryError(f"Batch get response is missing table {table_name}")

        for item in responses[table_name]:
            property_id = item.get(PROPERTY_ID_FIELD_NAME)
            if not isinstance(property_id, str):
                raise StoreQueryError(
                    f"Expected {PROPERTY_ID_FIELD_NAME} to be a string, got {property_id!r}"
                )
            existing_ids.add(property_id)

    new_candidates = {
        property_id: listing_id
        for property_id, listing_id in candidates.items()
        if property_id not in existing_ids
    }

    if logger:
        logger.info(f"Existence check: {len(candidates)} candidates, "
                    f"{len(candidates) - len(new_candidates)} already processed, "
                    f"{len(new_candidates)} new")

    return new_candidates


def put_property_record(record, table, logger=None):
    """Write a property record, overwriting any existing item with the same PropertyId"""
    try:
        table.put_item(Item=record.to_item())
    except (ClientError, BotoCoreError) as e:
        if logger:
            logger.error(f"Failed to save property {record.property_id}: {e}")
        raise StoreWriteError(f"Could not write property {record.property_id}") from e

    if logger:
        logger.debug(f"Saved property {record.property_id} with {len(record.image_ids)} images")


def get_property_record(property_id, table, logger=None):
    """Read a property record; returns None when the property is not stored"""
    try:
        response = table.get_item(Key={PROPERTY_ID_FIELD_NAME: property_id})
    except (ClientError, BotoCoreError) as e:
        if logger:
            logger.error(f"Failed to read property {property_id}: {e}")
        raise StoreReadError(f"Could not read property {property_id}") from e

    item = response.get('Item')
    if item is None:
        return None

    try:
        return PropertyRecord.from_item(item)
    except (KeyError, TypeError, ValueError) as e:
        raise StoreReadError(f"Malformed record for property {property_id}: {item!r}") from e
