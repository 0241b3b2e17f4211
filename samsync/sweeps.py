"""Periodic sweeps over user alerts: due reminders and saved searches."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from samsync.cache import CacheQuery, CacheStore
from samsync.models import CachedOpportunity, Reminder, SavedSearch, utcnow
from samsync.notify import BestEffortNotifier
from samsync.schemas import OpportunityOut, SavedSearchFilters

logger = logging.getLogger("samsync.sweeps")

SAVED_SEARCH_LOOKBACK = timedelta(hours=24)
SAVED_SEARCH_PREVIEW = 5

@dataclass
class SavedSearchSweep:
    evaluated: int = 0
    notified: int = 0
    failed: int = 0

def send_due_reminders(
    session_factory: sessionmaker,
    notifier: BestEffortNotifier,
    now: datetime | None = None,
) -> int:
    """Notify every due, unsent reminder and mark it sent. Returns how many were sent."""
    now = now or utcnow()
    sent = 0
    with session_factory() as session:
        due = session.execute(
            select(Reminder)
            .where(Reminder.is_sent.is_(False), Reminder.reminder_date <= now)
            .order_by(Reminder.reminder_date, Reminder.id)
        ).scalars().all()
        if not due:
            return 0

        notice_ids = {r.notice_id for r in due if r.notice_id}
        titles = dict(session.execute(
            select(CachedOpportunity.notice_id, CachedOpportunity.title)
            .where(CachedOpportunity.notice_id.in_(notice_ids))
        ).all()) if notice_ids else {}

        for reminder in due:
            title = titles.get(reminder.notice_id) or reminder.notice_id or "opportunity"
            notifier.notify(
                reminder.user_id,
                "reminder",
                f"Reminder: {title}",
                reminder.note or "",
                {"reminderId": reminder.id, "noticeId": reminder.notice_id},
            )
            # delivery is best-effort; the reminder is spent either way
            reminder.is_sent = True
            reminder.sent_at = now
            session.commit()
            sent += 1

    logger.info(f"⏰ Sent {sent} reminders")
    return sent

def _query_for(filters: SavedSearchFilters, since) -> CacheQuery:
    return CacheQuery(
        limit=SAVED_SEARCH_PREVIEW,
        keyword=filters.keyword,
        naics_code=filters.naicsCode,
        set_aside=filters.setAsideType,
        agency=filters.agency,
        type=filters.type,
        posted_from=since,
    )

def run_saved_searches(
    session_factory: sessionmaker,
    cache: CacheStore,
    notifier: BestEffortNotifier,
    now: datetime | None = None,
) -> SavedSearchSweep:
    """
    Re-run each active saved search over notices posted in the last 24h.
    ``last_run_at`` is stamped after every successful evaluation, match or not.
    """
    now = now or utcnow()
    since = (now - SAVED_SEARCH_LOOKBACK).date()
    outcome = SavedSearchSweep()

    with session_factory() as session:
        searches = session.execute(
            select(SavedSearch).where(SavedSearch.is_active.is_(True)).order_by(SavedSearch.id)
        ).scalars().all()

        for search in searches:
            try:
                filters = SavedSearchFilters.model_validate(search.filters or {})
                total, rows = cache.query(_query_for(filters, since))
            except (ValidationError, SQLAlchemyError) as e:
                outcome.failed += 1
                logger.error(f"❌ Saved search {search.id} ('{search.name}') failed: {e}")
                continue

            if total:
                notifier.notify(
                    search.user_id,
                    "saved_search",
                    f"{total} new matches for '{search.name}'",
                    f"{total} opportunities posted since {since.isoformat()} match your saved search.",
                    {
                        "savedSearchId": search.id,
                        "total": total,
                        "opportunities": [
                            OpportunityOut.model_validate(r).model_dump(mode="json") for r in rows
                        ],
                    },
                )
                outcome.notified += 1

            search.last_run_at = now
            session.commit()
            outcome.evaluated += 1

    logger.info(
        f"⏰ Saved searches: {outcome.evaluated} evaluated, {outcome.notified} notified, {outcome.failed} failed"
    )
    return outcome
