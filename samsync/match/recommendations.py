import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from samsync.schemas import CompanyProfile
from .scorer import has_certification

STOPWORDS = {"this", "that", "with", "from", "have", "will", "been"}
_WORD = re.compile(r"\b[a-z]{4,}\b")

@dataclass
class Recommendation:
    subject: str
    opportunities: int
    priority: str
    action: str
    benefit: str

@dataclass
class Recommendations:
    certifications: list[Recommendation] = field(default_factory=list)
    naics_codes: list[Recommendation] = field(default_factory=list)
    capabilities: list[Recommendation] = field(default_factory=list)

def common_title_terms(opportunities: Iterable[Any], top: int = 15) -> list[tuple[str, int]]:
    freq: Counter = Counter()
    for opp in opportunities:
        title = (getattr(opp, "title", None) or "").lower()
        freq.update(w for w in _WORD.findall(title) if w not in STOPWORDS)
    return sorted(freq.items(), key=lambda kv: (-kv[1], kv[0]))[:top]

def generate_recommendations(opportunities: Iterable[Any], profile: CompanyProfile) -> Recommendations:
    """
    Suggest certifications, NAICS registrations and capabilities that would
    open up more of the given opportunities to this profile.
    """
    opportunities = list(opportunities)
    recs = Recommendations()

    naics_freq: Counter = Counter()
    set_aside_freq: Counter = Counter()
    for opp in opportunities:
        if opp.naics_code:
            naics_freq[opp.naics_code] += 1
        if opp.set_aside_type and opp.set_aside_type != "None":
            set_aside_freq[opp.set_aside_type] += 1

    for set_aside, count in set_aside_freq.most_common(5):
        if count > 5 and not has_certification(set_aside, profile.certifications):
            recs.certifications.append(Recommendation(
                subject=set_aside,
                opportunities=count,
                priority="High" if count > 20 else "Medium" if count > 10 else "Low",
                action=f"Pursue {set_aside} certification",
                benefit=f"Access to {count} opportunities",
            ))

    ours = profile.naics_codes()
    for naics, count in naics_freq.most_common(10):
        if count > 10 and naics not in ours:
            recs.naics_codes.append(Recommendation(
                subject=naics,
                opportunities=count,
                priority="High" if count > 50 else "Medium" if count > 25 else "Low",
                action=f"Add NAICS {naics} to SAM.gov registration",
                benefit=f"Qualify for {count} additional opportunities",
            ))

    keywords = [k.lower() for k in profile.keywords]
    for term, count in common_title_terms(opportunities):
        if not any(term in k for k in keywords):
            recs.capabilities.append(Recommendation(
                subject=term,
                opportunities=count,
                priority="High" if count > 30 else "Medium",
                action=f"Develop capability: {term}",
                benefit=f"Appear in {count} more searches",
            ))

    return recs
