import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

@dataclass(frozen=True)
class RawPayload:
    """The untouched source record, kept as JSON text so it round-trips losslessly."""
    text: str

    @classmethod
    def from_record(cls, record: dict) -> "RawPayload":
        return cls(json.dumps(record, sort_keys=True, default=str))

    def parse(self) -> dict[str, Any]:
        return json.loads(self.text)

class RawPayloadType(TypeDecorator):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, RawPayload):
            return value.text
        return RawPayload.from_record(value).text

    def process_result_value(self, value, dialect):
        return RawPayload(value) if value is not None else None

class Base(DeclarativeBase):
    pass

class CachedOpportunity(Base):
    __tablename__ = "samgov_opportunities_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    notice_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    solicitation_number: Mapped[str | None] = mapped_column(Text)
    title: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str | None] = mapped_column(Text)
    posted_date: Mapped[date | None] = mapped_column(Date)
    response_deadline: Mapped[datetime | None] = mapped_column(DateTime)
    archive_date: Mapped[date | None] = mapped_column(Date)
    naics_code: Mapped[str | None] = mapped_column(Text)
    psc_code: Mapped[str | None] = mapped_column(Text)
    set_aside_type: Mapped[str | None] = mapped_column(Text)
    contracting_office: Mapped[str | None] = mapped_column(Text)
    place_of_performance: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    raw_payload: Mapped[RawPayload] = mapped_column(RawPayloadType, nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    seen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    linked_tracked_id: Mapped[int | None] = mapped_column(Integer)  # weak ref, no FK
    created_by: Mapped[int | None] = mapped_column(Integer)
    organization_id: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_samgov_cache_posted_date", "posted_date"),
        Index("ix_samgov_cache_naics_code", "naics_code"),
    )

class SearchHistory(Base):
    __tablename__ = "samgov_search_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str | None] = mapped_column(Text)
    posted_from: Mapped[date | None] = mapped_column(Date)
    posted_to: Mapped[date | None] = mapped_column(Date)
    naics_code: Mapped[str | None] = mapped_column(Text)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    existing_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="success")
    error: Mapped[str | None] = mapped_column(Text)
    searched_by: Mapped[int | None] = mapped_column(Integer)
    organization_id: Mapped[int | None] = mapped_column(Integer)
    search_params: Mapped[dict | None] = mapped_column(JSON)
    searched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

class ApiCredential(Base):
    __tablename__ = "api_secrets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_name: Mapped[str] = mapped_column(Text, nullable=False)
    organization_id: Mapped[int | None] = mapped_column(Integer)  # NULL = system-wide
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

class Reminder(Base):
    __tablename__ = "opportunity_reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    notice_id: Mapped[str | None] = mapped_column(Text)
    reminder_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    is_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_reminders_due", "is_sent", "reminder_date"),
    )

class SavedSearch(Base):
    __tablename__ = "saved_searches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    filters: Mapped[dict] = mapped_column(JSON, nullable=False)
    frequency: Mapped[str] = mapped_column(Text, nullable=False, default="daily")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str | None] = mapped_column(Text)
    data: Mapped[dict | None] = mapped_column(JSON)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

class MatchHistory(Base):
    __tablename__ = "company_opportunity_matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer)
    total_analyzed: Mapped[int] = mapped_column(Integer, nullable=False)
    matched_count: Mapped[int] = mapped_column(Integer, nullable=False)
    near_match_count: Mapped[int] = mapped_column(Integer, nullable=False)
    stretch_count: Mapped[int] = mapped_column(Integer, nullable=False)
    analysis_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
