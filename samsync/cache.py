"""Deduplicating cache of SAM.gov notices.

Every raw record is normalized once at this boundary and stored under its
``notice_id``. The first observation inserts a row; later observations bump
``last_seen_at`` and ``seen_count`` and replace the raw payload, leaving the
originally normalized columns untouched. A batch is one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from samsync.db import SessionLocal
from samsync.errors import DataShapeError, StorageError
from samsync.ingest.sam_gov import NormalizedRecord, normalize_record
from samsync.models import CachedOpportunity, SearchHistory, utcnow

logger = logging.getLogger("samsync.cache")

_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

FACET_COLUMNS = {
    "naics": CachedOpportunity.naics_code,
    "agency": CachedOpportunity.contracting_office,
    "set_aside": CachedOpportunity.set_aside_type,
    "place": CachedOpportunity.place_of_performance,
}

@dataclass
class IngestedItem:
    record: NormalizedRecord
    id: int
    first_seen_at: datetime
    seen_count: int
    status: str  # "new" | "existing"

    @property
    def notice_id(self) -> str:
        return self.record.notice_id

@dataclass
class IngestResult:
    total: int = 0
    skipped: int = 0
    new_items: list[IngestedItem] = field(default_factory=list)
    existing_items: list[IngestedItem] = field(default_factory=list)

    @property
    def new(self) -> int:
        return len(self.new_items)

    @property
    def existing(self) -> int:
        return len(self.existing_items)

    @property
    def summary(self) -> str:
        return (
            f"Found {self.total} total opportunities: {self.new} new, "
            f"{self.existing} already in database, {self.skipped} skipped"
        )

@dataclass
class CacheQuery:
    limit: int = 20
    offset: int = 0
    keyword: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None  # "active" | "inactive"
    naics_code: Optional[str] = None
    naics_codes: Optional[list[str]] = None
    set_aside: Optional[str] = None
    agency: Optional[str] = None
    place_of_performance: Optional[str] = None
    posted_from: Optional[date] = None
    posted_to: Optional[date] = None
    response_from: Optional[datetime] = None
    response_to: Optional[datetime] = None

class CacheStore:
    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory or SessionLocal
        self.clock = clock

    # ---------- Writes ----------

    def ingest(
        self,
        records: Iterable[dict],
        user_id: int | None = None,
        organization_id: int | None = None,
    ) -> IngestResult:
        """
        Insert-or-update a whole batch in one transaction.
        Records without an identifier are skipped; any storage failure rolls the
        batch back and raises StorageError.
        """
        result = IngestResult()
        now = self.clock()
        session: Session = self.session_factory()
        try:
            for raw in records:
                result.total += 1
                try:
                    rec = normalize_record(raw)
                except DataShapeError as e:
                    logger.warning(f"⚠️  Skipping record: {e}")
                    result.skipped += 1
                    continue

                item = self._upsert(session, rec, now, user_id, organization_id)
                if item.status == "new":
                    result.new_items.append(item)
                else:
                    result.existing_items.append(item)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"❌ Cache batch rolled back after {result.total} records: {e}")
            raise StorageError(f"failed to cache opportunities: {e}") from e
        finally:
            session.close()

        logger.info(result.summary)
        return result

    def _upsert(
        self,
        session: Session,
        rec: NormalizedRecord,
        now: datetime,
        user_id: int | None,
        organization_id: int | None,
    ) -> IngestedItem:
        insert = _DIALECT_INSERTS.get(session.get_bind().dialect.name)
        if insert is None:
            raise StorageError(f"unsupported database dialect: {session.get_bind().dialect.name}")

        c = CachedOpportunity
        stmt = insert(c).values(
            notice_id=rec.notice_id,
            solicitation_number=rec.solicitation_number,
            title=rec.title,
            type=rec.type,
            posted_date=rec.posted_date,
            response_deadline=rec.response_deadline,
            archive_date=rec.archive_date,
            naics_code=rec.naics_code,
            psc_code=rec.psc_code,
            set_aside_type=rec.set_aside_type,
            contracting_office=rec.contracting_office,
            place_of_performance=rec.place_of_performance,
            description=rec.description,
            raw_payload=rec.raw_payload,
            first_seen_at=now,
            last_seen_at=now,
            seen_count=1,
            created_by=user_id,
            organization_id=organization_id,
        )
        # a row committed by an overlapping batch becomes an increment
        stmt = stmt.on_conflict_do_update(
            index_elements=[c.notice_id],
            set_={
                "last_seen_at": stmt.excluded.last_seen_at,
                "seen_count": c.seen_count + 1,
                "raw_payload": stmt.excluded.raw_payload,
            },
        ).returning(c.id, c.first_seen_at, c.seen_count)

        row_id, first_seen_at, seen_count = session.execute(stmt).one()
        status = "new" if seen_count == 1 else "existing"
        return IngestedItem(rec, row_id, first_seen_at, seen_count, status)

    def link_to_tracked(self, notice_id: str, tracked_id: int) -> bool:
        with self.session_factory() as session:
            res = session.execute(
                update(CachedOpportunity)
                .where(CachedOpportunity.notice_id == notice_id)
                .values(linked_tracked_id=tracked_id)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return res.rowcount > 0

    def record_search_history(
        self,
        params: dict,
        result: IngestResult | None = None,
        status: str = "success",
        error: str | None = None,
        user_id: int | None = None,
        organization_id: int | None = None,
    ) -> SearchHistory:
        entry = SearchHistory(
            keyword=params.get("keyword"),
            posted_from=params.get("postedFrom") and date.fromisoformat(params["postedFrom"]),
            posted_to=params.get("postedTo") and date.fromisoformat(params["postedTo"]),
            naics_code=params.get("naicsCode"),
            total_records=result.total if result else 0,
            new_records=result.new if result else 0,
            existing_records=result.existing if result else 0,
            status=status,
            error=error,
            searched_by=user_id,
            organization_id=organization_id,
            search_params=params,
            searched_at=self.clock(),
        )
        with self.session_factory() as session:
            session.add(entry)
            session.commit()
        return entry

    # ---------- Reads ----------

    def get(self, notice_id: str) -> CachedOpportunity | None:
        with self.session_factory() as session:
            return session.execute(
                select(CachedOpportunity).where(CachedOpportunity.notice_id == notice_id)
            ).scalar_one_or_none()

    def count(self) -> int:
        with self.session_factory() as session:
            return session.execute(select(func.count(CachedOpportunity.id))).scalar_one()

    def list_all(self, limit: int = 50, offset: int = 0) -> tuple[int, list[CachedOpportunity]]:
        with self.session_factory() as session:
            total = session.execute(select(func.count(CachedOpportunity.id))).scalar_one()
            rows = session.execute(
                select(CachedOpportunity)
                .order_by(CachedOpportunity.first_seen_at.desc(), CachedOpportunity.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return total, list(rows)

    def query(self, q: CacheQuery) -> tuple[int, list[CachedOpportunity]]:
        """Filtered page of cached notices, most recently observed first."""
        conditions = []
        c = CachedOpportunity
        now = self.clock()

        if q.keyword:
            like = f"%{q.keyword}%"
            conditions.append(or_(c.title.ilike(like), c.solicitation_number.ilike(like), c.description.ilike(like)))
        if q.type:
            conditions.append(c.type == q.type)
        if q.status == "active":
            conditions.append(or_(c.response_deadline >= now, c.response_deadline.is_(None)))
        elif q.status == "inactive":
            conditions.append(c.response_deadline < now)
        if q.naics_code:
            conditions.append(c.naics_code.ilike(f"%{q.naics_code}%"))
        if q.naics_codes:
            conditions.append(c.naics_code.in_(q.naics_codes))
        if q.set_aside:
            conditions.append(c.set_aside_type == q.set_aside)
        if q.agency:
            conditions.append(c.contracting_office.ilike(f"%{q.agency}%"))
        if q.place_of_performance:
            conditions.append(c.place_of_performance.ilike(f"%{q.place_of_performance}%"))
        if q.posted_from:
            conditions.append(c.posted_date >= q.posted_from)
        if q.posted_to:
            conditions.append(c.posted_date <= q.posted_to)
        if q.response_from:
            conditions.append(c.response_deadline >= q.response_from)
        if q.response_to:
            conditions.append(c.response_deadline <= q.response_to)

        with self.session_factory() as session:
            total = session.execute(select(func.count(c.id)).where(*conditions)).scalar_one()
            rows = session.execute(
                select(c)
                .where(*conditions)
                .order_by(c.last_seen_at.desc(), c.id.desc())
                .limit(q.limit)
                .offset(q.offset)
            ).scalars().all()
            return total, list(rows)

    def facets(self, category: str, limit: int = 1000) -> list[tuple[str, int]]:
        column = FACET_COLUMNS.get(category)
        if column is None:
            raise ValueError(f"Invalid facet category: {category}")
        n = func.count(CachedOpportunity.id).label("n")
        with self.session_factory() as session:
            rows = session.execute(
                select(column, n)
                .where(column.is_not(None), column != "")
                .group_by(column)
                .order_by(n.desc(), column)
                .limit(limit)
            ).all()
            return [(value, count) for value, count in rows]

    def recent_searches(self, user_id: int | None = None, limit: int = 10) -> list[SearchHistory]:
        stmt = select(SearchHistory).order_by(SearchHistory.searched_at.desc(), SearchHistory.id.desc())
        if user_id is not None:
            stmt = stmt.where(SearchHistory.searched_by == user_id)
        with self.session_factory() as session:
            return list(session.execute(stmt.limit(limit)).scalars().all())
