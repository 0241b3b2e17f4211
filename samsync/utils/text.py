import re

from bs4 import BeautifulSoup

_TAG = re.compile(r"<[a-zA-Z/!][^>]*>")

def clean_text(t: str | None) -> str:
    """Collapse whitespace; markup (SAM.gov descriptions often carry it) is stripped first."""
    if not t:
        return ""
    if _TAG.search(t):
        t = BeautifulSoup(t, "html.parser").get_text(" ", strip=True)
    t = re.sub(r"\s+", " ", t)
    return t.strip()
