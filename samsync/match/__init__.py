from .matcher import match_cached_opportunities
from .profile import load_company_profile
from .recommendations import generate_recommendations
from .scorer import MatchResult, MatchTiers, Tier, match, score
