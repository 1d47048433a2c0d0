"""Claude-on-Bedrock agent that answers questions through DynamoDB tools."""

__version__ = "0.1.0"
