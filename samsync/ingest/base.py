from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

from dateparser import parse as dateparse

@dataclass(frozen=True)
class SyncContext:
    """Identity a sync runs under; both fields None means no credential was found."""
    organization_id: Optional[int] = None
    user_id: Optional[int] = None
    api_key: Optional[str] = None
    source: str = "none"  # "system" | "organization" | "none"

@dataclass(frozen=True)
class SearchParams:
    posted_from: date
    posted_to: date
    limit: int
    offset: int = 0
    keyword: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "postedFrom": self.posted_from.isoformat(),
            "postedTo": self.posted_to.isoformat(),
            "limit": self.limit,
            "offset": self.offset,
            "keyword": self.keyword,
        }

@dataclass
class SearchPage:
    total_available: int
    records: list[dict] = field(default_factory=list)

class SourceClient(ABC):
    """One paginated query against the opportunity provider."""

    # largest page the provider accepts
    max_page_size: int = 1000

    @abstractmethod
    def search(self, params: SearchParams, context: SyncContext) -> SearchPage:
        """
        Return one page of raw records plus the provider's total count.
        Raises ConfigurationError or SourceUnavailableError.
        """
        ...

def _to_date(maybe) -> Optional[date]:
    if maybe is None or maybe == "":
        return None
    if isinstance(maybe, datetime):
        return maybe.date()
    if isinstance(maybe, date):
        return maybe
    s = str(maybe).strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    dt = _to_datetime(s)
    return dt.date() if dt else None

def _to_datetime(maybe: Any) -> Optional[datetime]:
    """Parse to a naive UTC datetime; offsets are converted, naive values kept."""
    if maybe is None or maybe == "":
        return None
    if isinstance(maybe, datetime):
        dt = maybe
    elif isinstance(maybe, date):
        return datetime(maybe.year, maybe.month, maybe.day)
    else:
        s = str(maybe).strip()
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            # "03/15/2025", "Mar 15, 2025 2:00 PM EST", ...
            dt = dateparse(s, settings={"DATE_ORDER": "MDY"})
            if dt is None:
                return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
