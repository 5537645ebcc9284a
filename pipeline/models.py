"""Pydantic models for postcodes, crime records, and search history."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_OUTCOME = "Unknown"


class PostcodeResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    postcode: str
    latitude: float = 0.0
    longitude: float = 0.0
    valid: bool = False

    @classmethod
    def invalid(cls, postcode: str) -> PostcodeResolution:
        return cls(postcode=postcode, latitude=0.0, longitude=0.0, valid=False)


class Street(BaseModel):
    id: int | None = None
    name: str = ""


class CrimeLocation(BaseModel):
    latitude: str | None = None
    longitude: str | None = None
    street: Street = Field(default_factory=Street)


class OutcomeStatus(BaseModel):
    category: str | None = None
    date: str | None = None


class CrimeRecord(BaseModel):
    """One street-level crime as returned by the police.uk API."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    category: str
    location_type: str | None = None
    location: CrimeLocation = Field(default_factory=CrimeLocation)
    context: str | None = ""
    outcome_status: OutcomeStatus | None = None
    persistent_id: str | None = ""
    id: int | None = None
    location_subtype: str | None = ""
    month: str

    @property
    def outcome(self) -> str:
        if self.outcome_status and self.outcome_status.category:
            return self.outcome_status.category
        return UNKNOWN_OUTCOME


class EnrichedCrimeRecord(CrimeRecord):
    """A crime tagged with the postcode whose search produced it."""

    postcode: str
    display_date: str = Field(alias="displayDate")
    street_name: str = Field(alias="streetName")


class SearchResultSet(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    crimes: list[EnrichedCrimeRecord] = Field(default_factory=list)
    valid_postcodes: list[PostcodeResolution] = Field(
        default_factory=list, alias="validPostcodes"
    )
    # Month range the crimes were fetched for; None for an empty result
    date_from: str | None = Field(default=None, alias="dateFrom")
    date_to: str | None = Field(default=None, alias="dateTo")

    @classmethod
    def empty(cls) -> SearchResultSet:
        return cls(crimes=[], valid_postcodes=[])


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    postcode: str
    search_date: str = Field(alias="searchDate")
    timestamp: int  # epoch milliseconds


class CrimeStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_crimes: int = Field(alias="totalCrimes")
    category_breakdown: dict[str, int] = Field(alias="categoryBreakdown")
    outcome_breakdown: dict[str, int] = Field(alias="outcomeBreakdown")


class CrimeFilter(BaseModel):
    postcode: str | None = None
    category: str | None = None
    outcome: str | None = None


class UniqueValues(BaseModel):
    postcodes: list[str]
    categories: list[str]
    outcomes: list[str]


class MapMarkerGroup(BaseModel):
    latitude: float
    longitude: float
    postcode: str
    crimes: list[EnrichedCrimeRecord]
