# cwl_loader/opensearch/models.py
"""
Records passed between the transformer, the bulk client and the loader.
Each one lives for the processing of a single line, except LoadStats.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class LogGroupAttributes:
    """Owner account, log group and log stream taken from the CSV prefix of a line."""
    owner: str
    log_group: str
    log_stream: str


class LogEvent(BaseModel):
    """
    The embedded JSON payload plus the fields injected before indexing.
    The payload is passed through untouched; injected fields win on collision.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    payload: Dict[str, Any]
    timestamp: str = Field(alias='@timestamp')
    message: str = Field(alias='@message')
    owner: str = Field(alias='@owner')
    log_group: str = Field(alias='@log_group')
    log_stream: str = Field(alias='@log_stream')

    def to_document(self) -> Dict[str, Any]:
        """Returns the document exactly as it is sent to OpenSearch."""
        injected = self.model_dump(by_alias=True, exclude={'payload'})
        return {**self.payload, **injected}


@dataclass(frozen=True)
class BulkPayload:
    """One bulk action: the target index and the two-line request body."""
    index_name: str
    body: str
    event: LogEvent


@dataclass
class BulkSummary:
    attempted_items: int
    successful_items: int
    failed_items: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "attemptedItems": self.attempted_items,
            "successfulItems": self.successful_items,
            "failedItems": self.failed_items,
        }


@dataclass
class BulkResult:
    """
    Classified response of a single bulk POST.
    `success` and `error` are independent: a 200 with per-item failures
    carries both.
    """
    status_code: int
    success: Optional[BulkSummary] = None
    error: Optional[Dict[str, Any]] = None
    failed_items: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # Per-item rejections inside a 200 are failures too
        return (
            self.status_code == 200
            and self.error is None
            and (self.success is None or self.success.failed_items == 0)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "success": self.success.to_dict() if self.success else None,
            "error": self.error,
            "failedItems": self.failed_items,
        }


@dataclass
class LoadStats:
    """Run-lifetime counters, only ever touched by the loader's own loop."""
    lines_read: int = 0
    skipped: int = 0
    transform_errors: int = 0
    posted: int = 0
    succeeded: int = 0
    failed: int = 0
    transport_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
