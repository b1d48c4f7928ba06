# cwl_loader/opensearch/transformer.py
"""
Turns one line of a CloudWatch Logs export into a single OpenSearch bulk action.

A data line looks like:

    1683000000000,123456789012:/aws/lambda/orders,2023/05/01/[$LATEST]ab12,"{""domain"":""acme"",""logDate"":...}"

i.e. a CSV prefix followed by the JSON payload with its double quotes doubled,
wrapped in one pair of quotes.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cwl_loader.opensearch.models import BulkPayload, LogEvent, LogGroupAttributes

# Opening of the escaped JSON payload; lines without it are headers/noise.
DATA_MARKER = '{""domain""'
INDEX_PREFIX = "cwl"


class TransformError(ValueError):
    """Raised when a data line cannot be turned into a bulk action."""
    pass


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def is_data_line(line: str) -> bool:
    return DATA_MARKER in line


def parse_log_group_attributes(prefix: str) -> LogGroupAttributes:
    """
    Reads the owner, log group and log stream out of the CSV prefix.

    Field 1 is "<account-id>:<log-group-name>", field 2 the log stream name.
    """
    fields = prefix.split(",")
    if len(fields) < 3 or not fields[2]:
        raise TransformError(f"Expected at least 3 comma-separated fields before the payload, got {len(fields)}")

    owner, sep, log_group = fields[1].partition(":")
    if not sep:
        raise TransformError(f"Log group field '{fields[1]}' is not '<account-id>:<log-group>'")
    return LogGroupAttributes(owner=owner, log_group=log_group, log_stream=fields[2])


def parse_event_date(value: Any) -> datetime:
    """
    Parses the payload's logDate into an aware UTC datetime.

    Accepts ISO-8601 strings (a trailing Z or an offset; naive values are UTC)
    and epoch milliseconds.
    """
    if isinstance(value, bool):
        raise TransformError(f"Invalid logDate: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise TransformError(f"Invalid logDate: {value!r}") from e
    if not isinstance(value, str) or not value.strip():
        raise TransformError(f"Invalid logDate: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise TransformError(f"Invalid logDate: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix, e.g. 2023-05-01T00:00:00.000Z."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def build_index_name(env: str, domain: str, log_stream: str, event_date: datetime) -> str:
    """cwl-<env>-<domain>-<log stream>-<YYYY.MM.DD>, dated by the event's UTC day."""
    day = event_date.astimezone(timezone.utc).strftime("%Y.%m.%d")
    return f"{INDEX_PREFIX}-{env}-{domain}-{log_stream}-{day}"


def _extract_payload(line: str, marker_at: int) -> Dict[str, Any]:
    # Drop the closing quote that wraps the escaped JSON
    raw = line[marker_at:len(line) - 1].replace('""', '"')
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TransformError(f"Malformed JSON payload: {e}") from e

    if not isinstance(payload, dict):
        raise TransformError("JSON payload is not an object")
    for required in ("domain", "logDate"):
        if payload.get(required) in (None, ""):
            raise TransformError(f"JSON payload is missing '{required}'")
    return payload


def transform(line: str, env: str) -> Optional[BulkPayload]:
    """
    Converts one export line into a bulk action.

    Args:
        line: A raw line of the export file, without its newline.
        env: Deployment tag placed in the index name.

    Returns:
        None when the line carries no payload, otherwise the BulkPayload.

    Raises:
        TransformError: If the line has a payload but it cannot be used.
    """
    marker_at = line.find(DATA_MARKER)
    if marker_at == -1:
        return None

    payload = _extract_payload(line, marker_at)
    attributes = parse_log_group_attributes(line[:marker_at])
    event_date = parse_event_date(payload["logDate"])

    event = LogEvent(
        payload=payload,
        timestamp=format_timestamp(event_date),
        message=_compact_json(payload),
        owner=attributes.owner,
        log_group=attributes.log_group,
        log_stream=attributes.log_stream,
    )
    index_name = build_index_name(env, str(payload["domain"]), attributes.log_stream, event_date)

    action = {"index": {"_index": index_name}}
    body = _compact_json(action) + "\n" + _compact_json(event.to_document()) + "\n"
    return BulkPayload(index_name=index_name, body=body, event=event)
