"""Pydantic response models for the API."""

from __future__ import annotations

from pydantic import BaseModel

from pipeline.models import CrimeStats, EnrichedCrimeRecord, PostcodeResolution


class FilterOptions(BaseModel):
    postcodes: list[str]
    categories: list[str]
    outcomes: list[str]


class SearchResponse(BaseModel):
    postcodes: list[str]
    dateFrom: str
    dateTo: str
    validPostcodes: list[PostcodeResolution]
    stats: CrimeStats
    filters: FilterOptions
    crimes: list[EnrichedCrimeRecord]


class ErrorResponse(BaseModel):
    detail: str
    code: str
