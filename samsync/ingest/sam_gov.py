# samsync/ingest/sam_gov.py
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
import logging

import requests

from samsync.errors import ConfigurationError, DataShapeError, SourceUnavailableError
from samsync.models import RawPayload
from samsync.settings import settings
from samsync.utils.text import clean_text
from .base import SearchPage, SearchParams, SourceClient, SyncContext, _to_date, _to_datetime

logger = logging.getLogger("samsync.sam_gov")

HEADERS = {"User-Agent": settings.USER_AGENT}

SEARCH_PATH = "/opportunities/v2/search"

# SAM.gov typeOfSetAside codes -> the descriptions used for certification checks
SET_ASIDE_CODES = {
    "SBA": "Total Small Business Set-Aside (FAR 19.5)",
    "SBP": "Partial Small Business Set-Aside (FAR 19.5)",
    "8A": "8(a) Set-Aside (FAR 19.8)",
    "8AN": "8(a) Sole Source (FAR 19.8)",
    "HZC": "Historically Underutilized Business (HUBZone) Set-Aside (FAR 19.13)",
    "HZS": "Historically Underutilized Business (HUBZone) Sole Source (FAR 19.13)",
    "SDVOSBC": "Service-Disabled Veteran-Owned Small Business (SDVOSB) Set-Aside (FAR 19.14)",
    "SDVOSBS": "Service-Disabled Veteran-Owned Small Business (SDVOSB) Sole Source (FAR 19.14)",
    "WOSB": "Women-Owned Small Business (WOSB) Program Set-Aside (FAR 19.15)",
    "WOSBSS": "Women-Owned Small Business (WOSB) Program Sole Source (FAR 19.15)",
    "EDWOSB": "Economically Disadvantaged WOSB (EDWOSB) Program Set-Aside (FAR 19.15)",
    "EDWOSBSS": "Economically Disadvantaged WOSB (EDWOSB) Program Sole Source (FAR 19.15)",
    "VSA": "Veteran-Owned Small Business Set-Aside (specific to Department of VA)",
    "VSS": "Veteran-Owned Small Business Sole Source (specific to Department of VA)",
    "NONE": "None",
}

@dataclass
class NormalizedRecord:
    """Canonical shape of one SAM.gov notice; the only place raw field names are read."""
    notice_id: str
    title: str
    type: Optional[str]
    solicitation_number: Optional[str]
    posted_date: Optional[date]
    response_deadline: Optional[datetime]
    archive_date: Optional[date]
    naics_code: Optional[str]
    psc_code: Optional[str]
    set_aside_type: Optional[str]
    contracting_office: Optional[str]
    place_of_performance: Optional[str]
    description: Optional[str]
    raw_payload: RawPayload

def _first(record: dict, *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None

def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None

def extract_notice_id(record: dict) -> str:
    notice_id = _to_str(_first(record, "noticeId", "notice_id", "id"))
    if not notice_id:
        raise DataShapeError("record has no noticeId / notice_id / id")
    return notice_id

def _set_aside(record: dict) -> Optional[str]:
    desc = _to_str(_first(record, "typeOfSetAsideDescription", "set_aside_description"))
    if desc:
        return desc
    code = _to_str(_first(record, "typeOfSetAside", "set_aside_type"))
    if code is None:
        return None
    return SET_ASIDE_CODES.get(code.upper(), code)

def _office(record: dict) -> Optional[str]:
    name = _to_str(_first(record, "fullParentPathName", "office", "contracting_office"))
    if name:
        return name
    address = record.get("officeAddress")
    if isinstance(address, dict):
        return _to_str(address.get("city"))
    return None

def _place(record: dict) -> Optional[str]:
    pop = record.get("placeOfPerformance")
    if isinstance(pop, dict):
        parts = []
        city = pop.get("city")
        state = pop.get("state")
        if isinstance(city, dict) and city.get("name"):
            parts.append(str(city["name"]))
        if isinstance(state, dict) and (state.get("code") or state.get("name")):
            parts.append(str(state.get("code") or state.get("name")))
        return ", ".join(parts) or None
    return _to_str(_first(record, "place_of_performance"))

def _naics(record: dict) -> Optional[str]:
    value = _first(record, "naicsCode", "naics_code")
    if value is None:
        codes = record.get("naicsCodes")
        if isinstance(codes, list) and codes:
            value = codes[0]
    return _to_str(value)

def normalize_record(record: dict) -> NormalizedRecord:
    """Project a raw SAM.gov record onto the cache columns. Raises DataShapeError."""
    if not isinstance(record, dict):
        raise DataShapeError(f"expected a mapping, got {type(record).__name__}")
    return NormalizedRecord(
        notice_id=extract_notice_id(record),
        title=clean_text(_to_str(record.get("title"))) or "Untitled",
        type=_to_str(_first(record, "type", "baseType")),
        solicitation_number=_to_str(_first(record, "solicitationNumber", "solicitation_number")),
        posted_date=_to_date(_first(record, "postedDate", "posted_date")),
        response_deadline=_to_datetime(
            _first(record, "responseDeadLine", "reponseDeadLine", "responseDeadline", "response_deadline")
        ),
        archive_date=_to_date(_first(record, "archiveDate", "archive_date")),
        naics_code=_naics(record),
        psc_code=_to_str(_first(record, "classificationCode", "productServiceCode", "psc_code")),
        set_aside_type=_set_aside(record),
        contracting_office=_office(record),
        place_of_performance=_place(record),
        description=clean_text(_to_str(record.get("description"))) or None,
        raw_payload=RawPayload.from_record(record),
    )

def _format_date(d: date) -> str:
    # SAM.gov only accepts MM/dd/yyyy
    return d.strftime("%m/%d/%Y")

class SamGovClient(SourceClient):
    """
    SourceClient over the SAM.gov Opportunities API v2.
    One call = one page; pagination is driven by the caller.
    """
    max_page_size = 1000

    def __init__(self, base_url: str | None = None, timeout: int | None = None):
        self.base_url = (base_url or settings.SAM_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.SAM_REQUEST_TIMEOUT

    def search(self, params: SearchParams, context: SyncContext) -> SearchPage:
        if not context.api_key:
            raise ConfigurationError("SAM.gov API key not configured (system or organization)")

        query = {
            "api_key": context.api_key,
            "postedFrom": _format_date(params.posted_from),
            "postedTo": _format_date(params.posted_to),
            "limit": min(params.limit, self.max_page_size),
            "offset": params.offset,
        }
        if params.keyword:
            query["title"] = params.keyword

        try:
            response = requests.get(
                f"{self.base_url}{SEARCH_PATH}",
                params=query,
                headers=HEADERS,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise SourceUnavailableError(f"SAM.gov request failed: {e}") from e

        if response.status_code in (401, 403):
            raise ConfigurationError(f"SAM.gov rejected the API key (HTTP {response.status_code})")
        if not 200 <= response.status_code < 300:
            raise SourceUnavailableError(f"SAM.gov returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailableError("SAM.gov returned a non-JSON body") from e

        records = data.get("opportunitiesData") or []
        total = int(data.get("totalRecords") or 0)
        logger.debug(f"SAM.gov page offset={params.offset}: {len(records)} of {total}")
        return SearchPage(total_available=total, records=[r for r in records if isinstance(r, dict)])
