"""DynamoDB tool definitions served by the tool server."""

from typing import Any, Literal

from pydantic import Field

from dynamo_agent.services.dynamodb import DynamoDBService
from dynamo_agent.tools.base import ToolDefinition, ToolInput

KeyType = Literal["S", "N", "B"]
ProjectionType = Literal["ALL", "KEYS_ONLY", "INCLUDE"]


class ListTablesInput(ToolInput):
    limit: int | None = Field(None, description="Maximum number of tables to return (optional)")
    exclusive_start_table_name: str | None = Field(
        None, description="Name of the table to start from for pagination (optional)"
    )


class TableNameInput(ToolInput):
    table_name: str = Field(..., description="Name of the table to describe")


class CreateTableInput(ToolInput):
    table_name: str = Field(..., description="Name of the table to create")
    partition_key: str = Field(..., description="Name of the partition key")
    partition_key_type: KeyType = Field(..., description="Type of partition key (S=String, N=Number, B=Binary)")
    sort_key: str | None = Field(None, description="Name of the sort key (optional)")
    sort_key_type: KeyType | None = Field(None, description="Type of sort key (optional)")
    read_capacity: int = Field(..., description="Provisioned read capacity units")
    write_capacity: int = Field(..., description="Provisioned write capacity units")


class UpdateCapacityInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    read_capacity: int = Field(..., description="New read capacity units")
    write_capacity: int = Field(..., description="New write capacity units")


class PutItemInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    item: dict[str, Any] = Field(..., description="Item to put into the table")


class GetItemInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    key: dict[str, Any] = Field(..., description="Primary key of the item to retrieve")


class UpdateItemInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    key: dict[str, Any] = Field(..., description="Primary key of the item to update")
    update_expression: str = Field(..., description="Update expression (e.g., 'SET #n = :name')")
    expression_attribute_names: dict[str, str] = Field(..., description="Attribute name mappings")
    expression_attribute_values: dict[str, Any] | str = Field(..., description="Values for the update expression")
    condition_expression: str | None = Field(None, description="Condition for update (optional)")
    return_values: Literal["NONE", "ALL_OLD", "UPDATED_OLD", "ALL_NEW", "UPDATED_NEW"] | None = Field(
        None, description="What values to return"
    )


class DeleteItemInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    key: dict[str, Any] = Field(..., description="Primary key of the item to delete")
    condition_expression: str | None = Field(None, description="Condition for deletion (optional)")
    expression_attribute_names: dict[str, str] | None = Field(None, description="Attribute name mappings (optional)")
    expression_attribute_values: dict[str, Any] | str | None = Field(
        None, description="Values for condition expression (optional)"
    )
    return_values: Literal["NONE", "ALL_OLD"] | None = Field(None, description="What values to return")


class QueryTableInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    key_condition_expression: str = Field(..., description="Key condition expression (required for query)")
    expression_attribute_values: dict[str, Any] | str = Field(
        ..., description="Values for the key condition expression"
    )
    expression_attribute_names: dict[str, str] | None = Field(None, description="Attribute name mappings (optional)")
    filter_expression: str | None = Field(None, description="Filter expression for results (optional)")
    limit: int | None = Field(None, description="Maximum number of items to return (optional)")
    index_name: str | None = Field(None, description="Name of the index to query (optional)")
    scan_index_forward: bool | None = Field(
        None, description="Sort order for range key (true=ascending, false=descending)"
    )


class ScanTableInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    filter_expression: str | None = Field(None, description="Filter expression (optional)")
    expression_attribute_values: dict[str, Any] | str | None = Field(
        None, description="Values for the filter expression (optional)"
    )
    expression_attribute_names: dict[str, str] | None = Field(None, description="Attribute name mappings (optional)")
    limit: int | None = Field(None, description="Maximum number of items to return (optional)")
    index_name: str | None = Field(None, description="Name of the index to scan (optional)")


class CreateGSIInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    index_name: str = Field(..., description="Name of the new index")
    partition_key: str = Field(..., description="Partition key for the index")
    partition_key_type: KeyType = Field(..., description="Type of partition key")
    sort_key: str | None = Field(None, description="Sort key for the index (optional)")
    sort_key_type: KeyType | None = Field(None, description="Type of sort key (optional)")
    projection_type: ProjectionType = Field(..., description="Type of projection")
    non_key_attributes: list[str] | None = Field(None, description="Non-key attributes to project (optional)")
    read_capacity: int = Field(..., description="Provisioned read capacity units")
    write_capacity: int = Field(..., description="Provisioned write capacity units")


class UpdateGSIInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    index_name: str = Field(..., description="Name of the index to update")
    read_capacity: int = Field(..., description="New read capacity units")
    write_capacity: int = Field(..., description="New write capacity units")


class CreateLSIInput(ToolInput):
    table_name: str = Field(..., description="Name of the table")
    index_name: str = Field(..., description="Name of the new index")
    partition_key: str = Field(..., description="Partition key for the table")
    partition_key_type: KeyType = Field(..., description="Type of partition key")
    sort_key: str = Field(..., description="Sort key for the index")
    sort_key_type: KeyType = Field(..., description="Type of sort key")
    projection_type: ProjectionType = Field(..., description="Type of projection")
    non_key_attributes: list[str] | None = Field(None, description="Non-key attributes to project (optional)")
    read_capacity: int | None = Field(None, description="Provisioned read capacity units (optional, default: 5)")
    write_capacity: int | None = Field(None, description="Provisioned write capacity units (optional, default: 5)")


def create_dynamodb_tools(service: DynamoDBService) -> list[ToolDefinition]:
    """Build the DynamoDB tool catalog in the order it is advertised."""
    return [
        ToolDefinition(
            "dynamodb:list_tables", "Lists all DynamoDB tables in the account", ListTablesInput, service.list_tables
        ),
        ToolDefinition(
            "dynamodb:describe_table",
            "Gets detailed information about a DynamoDB table including schema, indexes, and capacity",
            TableNameInput,
            service.describe_table,
        ),
        ToolDefinition(
            "dynamodb:create_table",
            "Creates a new DynamoDB table with specified configuration",
            CreateTableInput,
            service.create_table,
        ),
        ToolDefinition(
            "dynamodb:update_capacity",
            "Updates the provisioned capacity of a table",
            UpdateCapacityInput,
            service.update_capacity,
        ),
        ToolDefinition("dynamodb:put_item", "Inserts or replaces an item in a table", PutItemInput, service.put_item),
        ToolDefinition(
            "dynamodb:get_item", "Retrieves an item from a table by its primary key", GetItemInput, service.get_item
        ),
        ToolDefinition(
            "dynamodb:update_item",
            "Updates specific attributes of an item in a table",
            UpdateItemInput,
            service.update_item,
        ),
        ToolDefinition(
            "dynamodb:delete_item",
            "Deletes an item from a table by its primary key",
            DeleteItemInput,
            service.delete_item,
        ),
        ToolDefinition(
            "dynamodb:query_table",
            "Queries a table using key conditions and optional filters. "
            "Most efficient for retrieving items with known partition key.",
            QueryTableInput,
            service.query_table,
        ),
        ToolDefinition(
            "dynamodb:scan_table",
            "Scans an entire table with optional filters. Use for full table scans or when partition key is unknown.",
            ScanTableInput,
            service.scan_table,
        ),
        ToolDefinition(
            "dynamodb:create_gsi", "Creates a global secondary index on a table", CreateGSIInput, service.create_gsi
        ),
        ToolDefinition(
            "dynamodb:update_gsi",
            "Updates the provisioned capacity of a global secondary index",
            UpdateGSIInput,
            service.update_gsi,
        ),
        ToolDefinition(
            "dynamodb:create_lsi",
            "Creates a local secondary index on a table (must be done during table creation)",
            CreateLSIInput,
            service.create_lsi,
        ),
    ]
