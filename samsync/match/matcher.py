from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from samsync.models import CachedOpportunity, MatchHistory, utcnow
from samsync.schemas import CompanyProfile
from .scorer import MatchTiers, match

def match_cached_opportunities(
    session: Session,
    profile: CompanyProfile,
    active_only: bool = True,
    limit: int | None = None,
    user_id: int | None = None,
    record_history: bool = False,
    now: datetime | None = None,
) -> MatchTiers:
    """
    Score cached notices against ``profile``. With ``record_history`` the
    aggregate counts are added to the caller's session (the caller commits).
    """
    stmt = select(CachedOpportunity).order_by(CachedOpportunity.posted_date.desc(), CachedOpportunity.id.desc())
    if active_only:
        now = now or utcnow()
        stmt = stmt.where(or_(
            CachedOpportunity.response_deadline >= now,
            CachedOpportunity.response_deadline.is_(None),
        ))
    if limit:
        stmt = stmt.limit(limit)

    tiers = match(session.execute(stmt).scalars().all(), profile)

    if record_history:
        session.add(MatchHistory(
            user_id=user_id,
            total_analyzed=tiers.total_analyzed,
            matched_count=len(tiers.matched),
            near_match_count=len(tiers.near_match),
            stretch_count=len(tiers.stretch),
            analysis_data={
                "matched": [s.score.notice_id for s in tiers.matched[:20]],
                "nearMatch": [s.score.notice_id for s in tiers.near_match[:10]],
                "stretch": [s.score.notice_id for s in tiers.stretch[:10]],
            },
        ))
        session.flush()
    return tiers
