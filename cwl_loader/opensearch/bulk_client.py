# cwl_loader/opensearch/bulk_client.py
import json
from typing import Any, Dict, List, Optional, Union

import requests

from cwl_loader.opensearch.models import BulkResult, BulkSummary
from cwl_loader.opensearch.signer import SignedRequest
from cwl_loader.settings import AppSettings


def normalize_host(endpoint: str) -> str:
    """Strips an optional scheme and trailing slash from the configured endpoint."""
    host = endpoint.strip()
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme):]
    return host.rstrip("/")


def _item_status(item: Dict[str, Any]) -> int:
    """
    Reads the status of one bulk item. Items are normally wrapped in their
    action name ({"index": {"status": 201}}); a bare {"status": 201} is accepted.
    """
    if "status" in item:
        return int(item["status"])
    for action in item.values():
        if isinstance(action, dict) and "status" in action:
            return int(action["status"])
    return 0


def classify_response(status_code: int, body: Union[Dict[str, Any], str, None]) -> BulkResult:
    """
    Turns a bulk API response into a BulkResult.

    A success summary is computed for 2xx responses; an error object is built
    whenever the status is not 200 or the service flags `errors`. The `items`
    list is dropped from the error object so log lines stay small.
    """
    result = BulkResult(status_code=status_code)
    info = body if isinstance(body, dict) else None

    if 200 <= status_code < 299 and info is not None:
        items: List[Dict[str, Any]] = info.get("items") or []
        failed_items = [item for item in items if _item_status(item) >= 300]
        result.failed_items = failed_items
        result.success = BulkSummary(
            attempted_items=len(items),
            successful_items=len(items) - len(failed_items),
            failed_items=len(failed_items),
        )

    if status_code != 200 or (info is not None and info.get("errors") is True):
        if info is not None:
            response_body: Any = {k: v for k, v in info.items() if k != "items"}
        else:
            response_body = body
        result.error = {"statusCode": status_code, "responseBody": response_body}

    return result


class BulkClient:
    """
    Posts signed bulk requests to an OpenSearch domain, one per call.
    Transport failures (requests.exceptions.RequestException) are raised to the caller.
    """

    def __init__(self, settings: AppSettings, session: Optional[requests.Session] = None):
        self.timeout = settings.request_timeout
        self.session = session or requests.Session()

    def post(self, request: SignedRequest) -> BulkResult:
        url = f"https://{request.host}{request.path}"
        response = self.session.post(
            url,
            data=request.body,
            headers=request.headers,
            timeout=self.timeout,
        )

        try:
            body: Union[Dict[str, Any], str] = response.json()
        except ValueError:
            # Gateways answer 403/5xx with HTML or plain text
            body = response.text

        return classify_response(response.status_code, body)

    def close(self) -> None:
        self.session.close()
