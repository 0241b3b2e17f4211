"""Capability-fit scoring of opportunities against a company profile.

Four independent axes add up to 0-100:

    NAICS       30  code is one of the profile's capability NAICS codes
    PSC         20  code is one of the profile's capability PSC codes
    keywords   0-30 3 points per profile keyword found in title + description
    set-aside   20  open competition / general small business, or a held certification

Opportunities are anything exposing ``notice_id``, ``title``, ``description``,
``naics_code``, ``psc_code`` and ``set_aside_type`` (a cached row or a freshly
normalized record). Nothing here does I/O or mutates its inputs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from samsync.schemas import Certifications, CompanyProfile

NAICS_POINTS = 30
PSC_POINTS = 20
KEYWORD_POINTS = 3
KEYWORD_CAP = 30
SET_ASIDE_POINTS = 20

MATCHED_MIN = 70
NEAR_MATCH_MIN = 50
STRETCH_MIN = 30

class Tier(str, Enum):
    MATCHED = "matched"
    NEAR_MATCH = "nearMatch"
    STRETCH = "stretch"
    EXCLUDED = "excluded"

def tier_for(total: int) -> Tier:
    if total >= MATCHED_MIN:
        return Tier.MATCHED
    if total >= NEAR_MATCH_MIN:
        return Tier.NEAR_MATCH
    if total >= STRETCH_MIN:
        return Tier.STRETCH
    return Tier.EXCLUDED

@dataclass(frozen=True)
class MatchResult:
    notice_id: str | None
    naics: int
    psc: int
    keywords: int
    set_aside: int
    keyword_hits: int
    reasons: tuple[str, ...]
    gaps: tuple[str, ...]

    @property
    def total(self) -> int:
        return self.naics + self.psc + self.keywords + self.set_aside

    @property
    def tier(self) -> Tier:
        return tier_for(self.total)

    def as_dict(self) -> dict:
        return {
            "naics": self.naics,
            "psc": self.psc,
            "keywords": self.keywords,
            "setAside": self.set_aside,
            "total": self.total,
            "tier": self.tier.value,
            "reasons": list(self.reasons),
            "gaps": list(self.gaps),
        }

@dataclass(frozen=True)
class ScoredOpportunity:
    opportunity: Any
    score: MatchResult

@dataclass
class MatchTiers:
    matched: list[ScoredOpportunity] = field(default_factory=list)
    near_match: list[ScoredOpportunity] = field(default_factory=list)
    stretch: list[ScoredOpportunity] = field(default_factory=list)
    total_analyzed: int = 0

    def counts(self) -> dict[str, int]:
        return {
            "totalAnalyzed": self.total_analyzed,
            "matched": len(self.matched),
            "nearMatch": len(self.near_match),
            "stretch": len(self.stretch),
        }

def is_open_set_aside(set_aside: str | None) -> bool:
    """True when anyone (or any small business) may bid."""
    if not set_aside:
        return True
    s = set_aside.strip().lower()
    if s in ("", "none", "no set aside used"):
        return True
    return "total small business" in s or "partial small business" in s

def has_certification(set_aside: str, certs: Certifications) -> bool:
    s = set_aside.lower()
    # order matters: specific programs mention "small business" too
    if "8(a)" in s:
        return certs.eight_a
    if "hubzone" in s:
        return certs.hubzone
    if "woman" in s or "women" in s or "wosb" in s:
        return certs.woman_owned
    if "veteran" in s or "sdvosb" in s:
        return certs.sdvosb or certs.veteran
    if "small business" in s:
        return certs.small_business
    return False

def score(opportunity: Any, profile: CompanyProfile) -> MatchResult:
    reasons: list[str] = []
    gaps: list[str] = []

    naics = 0
    opp_naics = getattr(opportunity, "naics_code", None)
    if opp_naics:
        if opp_naics in profile.naics_codes():
            naics = NAICS_POINTS
            reasons.append(f"NAICS match: {opp_naics}")
        else:
            gaps.append(f"NAICS {opp_naics} not in our primary codes")

    psc = 0
    opp_psc = getattr(opportunity, "psc_code", None)
    if opp_psc:
        if opp_psc in profile.psc_codes():
            psc = PSC_POINTS
            reasons.append(f"PSC match: {opp_psc}")
        else:
            gaps.append(f"PSC {opp_psc} not in our service codes")

    text = f"{getattr(opportunity, 'title', None) or ''} {getattr(opportunity, 'description', None) or ''}".lower()
    hits = sum(1 for kw in profile.keywords if kw and kw.lower() in text)
    keywords = min(KEYWORD_CAP, hits * KEYWORD_POINTS)
    if hits:
        reasons.append(f"{hits} keyword matches")

    set_aside = 0
    opp_set_aside = getattr(opportunity, "set_aside_type", None)
    if is_open_set_aside(opp_set_aside):
        set_aside = SET_ASIDE_POINTS
        reasons.append("Set-aside compatible")
    elif has_certification(opp_set_aside, profile.certifications):
        set_aside = SET_ASIDE_POINTS
        reasons.append(f"Have {opp_set_aside} certification")
    else:
        gaps.append(f"Need {opp_set_aside} certification")

    return MatchResult(
        notice_id=getattr(opportunity, "notice_id", None),
        naics=naics,
        psc=psc,
        keywords=keywords,
        set_aside=set_aside,
        keyword_hits=hits,
        reasons=tuple(reasons),
        gaps=tuple(gaps),
    )

def _rank_key(item: ScoredOpportunity):
    # notice id breaks ties so equal totals come out in a stable order
    return (-item.score.total, item.score.notice_id or "")

def match(opportunities: Iterable[Any], profile: CompanyProfile) -> MatchTiers:
    tiers = MatchTiers()
    buckets = {
        Tier.MATCHED: tiers.matched,
        Tier.NEAR_MATCH: tiers.near_match,
        Tier.STRETCH: tiers.stretch,
    }
    for opp in opportunities:
        tiers.total_analyzed += 1
        result = score(opp, profile)
        bucket = buckets.get(result.tier)
        if bucket is not None:
            bucket.append(ScoredOpportunity(opp, result))

    for bucket in buckets.values():
        bucket.sort(key=_rank_key)
    return tiers
