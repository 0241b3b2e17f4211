from pathlib import Path

from samsync.schemas import CompanyProfile

def load_company_profile(path: str | Path) -> CompanyProfile:
    """Read a CompanyProfile from a JSON file; pydantic validates the shape."""
    return CompanyProfile.model_validate_json(Path(path).read_text(encoding="utf-8"))
