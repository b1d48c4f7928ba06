"""Ships CloudWatch Logs exports into OpenSearch and prunes old Lambda versions."""

__version__ = "1.0.0"
