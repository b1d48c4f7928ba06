# tests/helpers.py
import json
import os
from pathlib import Path
from typing import Any, Dict

FIXTURES_DIR = Path(os.path.dirname(os.path.abspath(__file__))) / "fixtures"

ENDPOINT = "search-logs-abc123.us-east-1.es.amazonaws.com"


def make_line(payload: Dict[str, Any], stream: str = "stream1",
              group: str = "123456789012:/aws/lambda/orders-api") -> str:
    """Builds an export line the way CloudWatch Logs writes it (payload quotes doubled)."""
    escaped = json.dumps(payload).replace('"', '""')
    return f'1682899200000,{group},{stream},"{escaped}"'


def bulk_response(*statuses: int, errors: bool = False) -> Dict[str, Any]:
    """A bulk API response body with one `index` item per status."""
    return {
        "took": 3,
        "errors": errors,
        "items": [{"index": {"_index": "cwl-test", "status": status}} for status in statuses],
    }
