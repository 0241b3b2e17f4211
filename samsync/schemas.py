from pydantic import BaseModel, Field
from datetime import date, datetime

class OpportunityOut(BaseModel):
    id: int
    notice_id: str
    title: str | None
    type: str | None
    solicitation_number: str | None
    posted_date: date | None
    response_deadline: datetime | None
    naics_code: str | None
    psc_code: str | None
    set_aside_type: str | None
    contracting_office: str | None
    place_of_performance: str | None
    first_seen_at: datetime
    last_seen_at: datetime
    seen_count: int

    class Config:
        from_attributes = True

class Capability(BaseModel):
    name: str
    naics_codes: list[str] = Field(default_factory=list, alias="naicsCodes")
    psc_codes: list[str] = Field(default_factory=list, alias="pscCodes")
    maturity: str | None = None
    description: str | None = None

    class Config:
        frozen = True
        populate_by_name = True

class Certifications(BaseModel):
    small_business: bool = Field(default=False, alias="smallBusiness")
    veteran: bool = False
    woman_owned: bool = Field(default=False, alias="womanOwned")
    eight_a: bool = Field(default=False, alias="8a")
    hubzone: bool = False
    sdvosb: bool = False

    class Config:
        frozen = True
        populate_by_name = True

class CompanyProfile(BaseModel):
    """What a buyer can do: capability codes, certifications, keywords."""
    name: str | None = None
    capabilities: list[Capability] = Field(default_factory=list)
    certifications: Certifications = Field(default_factory=Certifications)
    keywords: list[str] = Field(default_factory=list)

    class Config:
        frozen = True

    def naics_codes(self) -> set[str]:
        return {code for cap in self.capabilities for code in cap.naics_codes}

    def psc_codes(self) -> set[str]:
        return {code for cap in self.capabilities for code in cap.psc_codes}

class SavedSearchFilters(BaseModel):
    keyword: str | None = None
    naicsCode: str | None = None
    setAsideType: str | None = None
    agency: str | None = None
    type: str | None = None

    class Config:
        coerce_numbers_to_str = True
