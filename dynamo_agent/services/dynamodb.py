"""DynamoDB operations behind the tool server."""

import json
import os
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from dynamo_agent.utils.logging import get_logger

logger = get_logger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

TYPED_VALUE_KEYS = ("N", "S", "B")


def _to_dynamo_value(value: Any) -> Any:
    # TypeSerializer rejects floats.
    return json.loads(json.dumps(value), parse_float=Decimal)


def marshall(item: dict[str, Any]) -> dict[str, Any]:
    return {key: _serializer.serialize(_to_dynamo_value(value)) for key, value in item.items()}


def unmarshall(item: dict[str, Any]) -> dict[str, Any]:
    return {key: _deserializer.deserialize(value) for key, value in item.items()}


def json_default(value: Any) -> Any:
    """Render DynamoDB and SDK values as JSON."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, set | frozenset):
        return sorted(value, key=str)
    if isinstance(value, Binary):
        return value.value.decode("utf-8", errors="replace")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _to_number(value: Any) -> int | float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else number


def _compact(**kwargs: Any) -> dict[str, Any]:
    """Drop unset request parameters; boto3 rejects explicit None."""
    return {key: value for key, value in kwargs.items() if value is not None}


def _error_details(error: Exception) -> tuple[str, str]:
    """Return (message, error type) for an SDK or validation error."""
    if isinstance(error, ClientError):
        details = error.response.get("Error", {})
        return details.get("Message") or str(error), details.get("Code") or type(error).__name__
    return str(error), type(error).__name__


def normalize_attribute_values(values: Any) -> dict[str, Any] | None:
    """Accept expression attribute values as a dict or JSON string.

    Typed wrappers such as ``{"N": "42"}`` are unwrapped to plain values.
    """
    if not values:
        return None

    if isinstance(values, str):
        try:
            values = json.loads(values)
        except ValueError as e:
            logger.error(f"Error parsing expressionAttributeValues: {e}")
            return None

    if not isinstance(values, dict):
        return None

    normalized: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict) and any(value.get(k) for k in TYPED_VALUE_KEYS):
            if "N" in value:
                normalized[key] = _to_number(value["N"])
            elif "S" in value:
                normalized[key] = value["S"]
            else:
                normalized[key] = value["B"]
        else:
            normalized[key] = value
    return normalized


def clean_expression_attribute_names(names: dict[str, str] | None, expressions: list[str | None]) -> dict[str, str] | None:
    """Keep only the attribute name placeholders used by ``expressions``.

    Raises:
        ValueError: If a bare ``#`` placeholder is supplied.
    """
    if not names:
        return None

    combined = " ".join(expression for expression in expressions if isinstance(expression, str))
    cleaned: dict[str, str] = {}
    for key, value in names.items():
        if key == "#":
            raise ValueError(
                'Invalid ExpressionAttributeNames key: "#" is not allowed. Use descriptive names like "#age", "#name".'
            )
        if key in combined:
            cleaned[key] = value

    return cleaned or None


def fix_item_key_types(item: dict[str, Any] | None, table: dict[str, Any] | None) -> dict[str, Any] | None:
    """Coerce key attributes of ``item`` to the types declared by the table."""
    if not item or not table or not table.get("KeySchema") or not table.get("AttributeDefinitions"):
        return item

    key_attrs = [key["AttributeName"] for key in table["KeySchema"] if isinstance(key.get("AttributeName"), str)]
    attr_types = {
        definition["AttributeName"]: definition["AttributeType"]
        for definition in table["AttributeDefinitions"]
        if isinstance(definition.get("AttributeName"), str) and isinstance(definition.get("AttributeType"), str)
    }

    fixed = dict(item)
    for attr in key_attrs:
        if attr not in fixed:
            continue
        value = fixed[attr]
        expected = attr_types.get(attr)
        if expected == "S" and not isinstance(value, str):
            fixed[attr] = json.dumps(value) if isinstance(value, dict | list) else str(value)
        elif expected == "N" and (isinstance(value, bool) or not isinstance(value, int | float)):
            number = _to_number(value)
            if number is not None:
                fixed[attr] = number
    return fixed


def _key_schema(partition_key: str, sort_key: str | None = None) -> list[dict[str, str]]:
    schema = [{"AttributeName": partition_key, "KeyType": "HASH"}]
    if sort_key:
        schema.append({"AttributeName": sort_key, "KeyType": "RANGE"})
    return schema


def _attribute_definitions(
    partition_key: str, partition_key_type: str, sort_key: str | None = None, sort_key_type: str | None = None
) -> list[dict[str, str]]:
    definitions = [{"AttributeName": partition_key, "AttributeType": partition_key_type}]
    if sort_key:
        definitions.append({"AttributeName": sort_key, "AttributeType": sort_key_type or "S"})
    return definitions


def _throughput(read_capacity: int | None, write_capacity: int | None, default: int = 1) -> dict[str, int]:
    return {
        "ReadCapacityUnits": max(1, read_capacity or default),
        "WriteCapacityUnits": max(1, write_capacity or default),
    }


def _projection(projection_type: str, non_key_attributes: list[str] | None) -> dict[str, Any]:
    projection: dict[str, Any] = {"ProjectionType": projection_type}
    if projection_type == "INCLUDE" and non_key_attributes:
        projection["NonKeyAttributes"] = non_key_attributes
    return projection


def _index_suffix(index_name: str | None) -> str:
    return f" (index: {index_name})" if index_name else ""


class DynamoDBService:
    """Executes table, item and index operations and reports them as JSON-ready dicts.

    Every operation returns ``{"success": bool, "message": str, ...}``; SDK errors are
    reported in the result rather than raised.
    """

    def __init__(self, client: Any = None):
        self.client = client or boto3.client("dynamodb", region_name=os.getenv("AWS_REGION"))

    def get_table_schema(self, table_name: str) -> dict[str, Any] | None:
        try:
            return self.client.describe_table(TableName=table_name).get("Table")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error getting table schema for {table_name}: {e}")
            return None

    def list_tables(self, params) -> dict[str, Any]:
        try:
            response = self.client.list_tables(
                **_compact(Limit=params.limit, ExclusiveStartTableName=params.exclusive_start_table_name)
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing tables: {e}")
            return {"success": False, "message": f"Failed to list tables: {_error_details(e)[0]}"}

        tables = response.get("TableNames") or []
        return {
            "success": True,
            "message": "Tables listed successfully",
            "tables": tables,
            "lastEvaluatedTable": response.get("LastEvaluatedTableName"),
            "tableCount": len(tables),
        }

    def describe_table(self, params) -> dict[str, Any]:
        try:
            table = self.client.describe_table(TableName=params.table_name).get("Table") or {}
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error describing table: {e}")
            return {"success": False, "message": f"Failed to describe table: {_error_details(e)[0]}"}

        key_schema = table.get("KeySchema") or []
        return {
            "success": True,
            "message": f"Table {params.table_name} described successfully",
            "table": table,
            "summary": {
                "tableName": table.get("TableName"),
                "status": table.get("TableStatus"),
                "itemCount": table.get("ItemCount"),
                "tableSize": table.get("TableSizeBytes"),
                "partitionKey": next((k["AttributeName"] for k in key_schema if k.get("KeyType") == "HASH"), None),
                "sortKey": next((k["AttributeName"] for k in key_schema if k.get("KeyType") == "RANGE"), None),
                "gsiCount": len(table.get("GlobalSecondaryIndexes") or []),
                "lsiCount": len(table.get("LocalSecondaryIndexes") or []),
            },
        }

    def create_table(self, params) -> dict[str, Any]:
        if not params.table_name or not 3 <= len(params.table_name) <= 255:
            return {"success": False, "message": "Table name must be between 3 and 255 characters"}

        try:
            response = self.client.create_table(
                TableName=params.table_name,
                AttributeDefinitions=_attribute_definitions(
                    params.partition_key, params.partition_key_type, params.sort_key, params.sort_key_type
                ),
                KeySchema=_key_schema(params.partition_key, params.sort_key),
                ProvisionedThroughput=_throughput(params.read_capacity, params.write_capacity),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error creating table: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to create table: {message}", "errorType": error_type}

        description = response.get("TableDescription") or {}
        return {
            "success": True,
            "message": f"Table {params.table_name} created successfully. Status: {description.get('TableStatus')}",
            "details": description,
        }

    def update_capacity(self, params) -> dict[str, Any]:
        try:
            response = self.client.update_table(
                TableName=params.table_name,
                ProvisionedThroughput=_throughput(params.read_capacity, params.write_capacity),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error updating capacity: {e}")
            return {"success": False, "message": f"Failed to update capacity: {_error_details(e)[0]}"}

        return {
            "success": True,
            "message": f"Capacity updated successfully for table {params.table_name}",
            "details": response.get("TableDescription"),
        }

    def put_item(self, params) -> dict[str, Any]:
        try:
            item = fix_item_key_types(params.item, self.get_table_schema(params.table_name))
            self.client.put_item(TableName=params.table_name, Item=marshall(item))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error putting item: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to put item: {message}", "errorType": error_type}

        return {"success": True, "message": f"Item added successfully to table {params.table_name}", "item": item}

    def get_item(self, params) -> dict[str, Any]:
        try:
            key = fix_item_key_types(params.key, self.get_table_schema(params.table_name))
            response = self.client.get_item(TableName=params.table_name, Key=marshall(key))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error getting item: {e}")
            return {"success": False, "message": f"Failed to get item: {_error_details(e)[0]}"}

        item = response.get("Item")
        if item:
            message = f"Item retrieved successfully from table {params.table_name}"
        else:
            message = f"No item found with the specified key in table {params.table_name}"
        return {
            "success": True,
            "message": message,
            "item": unmarshall(item) if item else None,
            "found": bool(item),
        }

    def update_item(self, params) -> dict[str, Any]:
        try:
            key = fix_item_key_types(params.key, self.get_table_schema(params.table_name))
            values = normalize_attribute_values(params.expression_attribute_values)
            response = self.client.update_item(
                **_compact(
                    TableName=params.table_name,
                    Key=marshall(key),
                    UpdateExpression=params.update_expression,
                    ExpressionAttributeNames=params.expression_attribute_names or None,
                    ExpressionAttributeValues=marshall(values) if values else None,
                    ConditionExpression=params.condition_expression,
                    ReturnValues=params.return_values or "NONE",
                )
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error updating item: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to update item: {message}", "errorType": error_type}

        attributes = response.get("Attributes")
        return {
            "success": True,
            "message": f"Item updated successfully in table {params.table_name}",
            "attributes": unmarshall(attributes) if attributes else None,
        }

    def delete_item(self, params) -> dict[str, Any]:
        try:
            key = fix_item_key_types(params.key, self.get_table_schema(params.table_name))
            values = normalize_attribute_values(params.expression_attribute_values)
            response = self.client.delete_item(
                **_compact(
                    TableName=params.table_name,
                    Key=marshall(key),
                    ConditionExpression=params.condition_expression,
                    ExpressionAttributeNames=params.expression_attribute_names or None,
                    ExpressionAttributeValues=marshall(values) if values else None,
                    ReturnValues=params.return_values or "NONE",
                )
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting item: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to delete item: {message}", "errorType": error_type}

        attributes = response.get("Attributes")
        return {
            "success": True,
            "message": f"Item deleted successfully from table {params.table_name}",
            "attributes": unmarshall(attributes) if attributes else None,
        }

    def _read_result(self, operation: str, params, response: dict[str, Any]) -> dict[str, Any]:
        last_key = response.get("LastEvaluatedKey")
        return {
            "success": True,
            "message": f"{operation} executed successfully on table {params.table_name}{_index_suffix(params.index_name)}",
            "items": [unmarshall(item) for item in response.get("Items") or []],
            "count": response.get("Count"),
            "scannedCount": response.get("ScannedCount"),
            "lastEvaluatedKey": unmarshall(last_key) if last_key else None,
            "consumedCapacity": response.get("ConsumedCapacity"),
        }

    def query_table(self, params) -> dict[str, Any]:
        """Run a key-condition query.

        Failures are reported with ``errorType`` and no fallback is attempted here.
        """
        try:
            values = normalize_attribute_values(params.expression_attribute_values)
            names = clean_expression_attribute_names(
                params.expression_attribute_names, [params.key_condition_expression, params.filter_expression]
            )
            response = self.client.query(
                **_compact(
                    TableName=params.table_name,
                    IndexName=params.index_name,
                    KeyConditionExpression=params.key_condition_expression,
                    ExpressionAttributeValues=marshall(values) if values else None,
                    ExpressionAttributeNames=names,
                    FilterExpression=params.filter_expression,
                    Limit=params.limit,
                    ScanIndexForward=params.scan_index_forward,
                )
            )
        except (ClientError, BotoCoreError, ValueError) as e:
            logger.error(f"Error querying table: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to query table: {message}", "items": [], "errorType": error_type}

        return self._read_result("Query", params, response)

    def scan_table(self, params) -> dict[str, Any]:
        try:
            values = normalize_attribute_values(params.expression_attribute_values)
            names = clean_expression_attribute_names(params.expression_attribute_names, [params.filter_expression])
            response = self.client.scan(
                **_compact(
                    TableName=params.table_name,
                    IndexName=params.index_name,
                    FilterExpression=params.filter_expression,
                    ExpressionAttributeValues=marshall(values) if values else None,
                    ExpressionAttributeNames=names,
                    Limit=params.limit,
                )
            )
        except (ClientError, BotoCoreError, ValueError) as e:
            logger.error(f"Error scanning table: {e}")
            message, error_type = _error_details(e)
            return {"success": False, "message": f"Failed to scan table: {message}", "items": [], "errorType": error_type}

        return self._read_result("Scan", params, response)

    def create_gsi(self, params) -> dict[str, Any]:
        try:
            response = self.client.update_table(
                TableName=params.table_name,
                AttributeDefinitions=_attribute_definitions(
                    params.partition_key, params.partition_key_type, params.sort_key, params.sort_key_type
                ),
                GlobalSecondaryIndexUpdates=[
                    {
                        "Create": {
                            "IndexName": params.index_name,
                            "KeySchema": _key_schema(params.partition_key, params.sort_key),
                            "Projection": _projection(params.projection_type, params.non_key_attributes),
                            "ProvisionedThroughput": _throughput(params.read_capacity, params.write_capacity),
                        }
                    }
                ],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error creating GSI: {e}")
            return {"success": False, "message": f"Failed to create GSI: {_error_details(e)[0]}"}

        return {
            "success": True,
            "message": f"GSI {params.index_name} creation initiated on table {params.table_name}",
            "details": response.get("TableDescription"),
        }

    def update_gsi(self, params) -> dict[str, Any]:
        try:
            response = self.client.update_table(
                TableName=params.table_name,
                GlobalSecondaryIndexUpdates=[
                    {
                        "Update": {
                            "IndexName": params.index_name,
                            "ProvisionedThroughput": _throughput(params.read_capacity, params.write_capacity),
                        }
                    }
                ],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error updating GSI: {e}")
            return {"success": False, "message": f"Failed to update GSI: {_error_details(e)[0]}"}

        return {
            "success": True,
            "message": f"GSI {params.index_name} capacity updated on table {params.table_name}",
            "details": response.get("TableDescription"),
        }

    def create_lsi(self, params) -> dict[str, Any]:
        """Create a table with a local secondary index; LSIs only exist from table creation."""
        try:
            response = self.client.create_table(
                TableName=params.table_name,
                AttributeDefinitions=_attribute_definitions(
                    params.partition_key, params.partition_key_type, params.sort_key, params.sort_key_type
                ),
                KeySchema=_key_schema(params.partition_key),
                LocalSecondaryIndexes=[
                    {
                        "IndexName": params.index_name,
                        "KeySchema": _key_schema(params.partition_key, params.sort_key),
                        "Projection": _projection(params.projection_type, params.non_key_attributes),
                    }
                ],
                ProvisionedThroughput=_throughput(params.read_capacity, params.write_capacity, default=5),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error creating LSI: {e}")
            return {"success": False, "message": f"Failed to create LSI: {_error_details(e)[0]}"}

        return {
            "success": True,
            "message": f"LSI {params.index_name} created on table {params.table_name}",
            "details": response.get("TableDescription"),
        }
