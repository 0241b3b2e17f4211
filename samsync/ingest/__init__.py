from .base import SearchPage, SearchParams, SourceClient, SyncContext
from .sam_gov import NormalizedRecord, SamGovClient, extract_notice_id, normalize_record
