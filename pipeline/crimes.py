"""Street-level crime fetches from the police.uk API."""

from __future__ import annotations

import asyncio
import logging

import httpx
import pydantic

from pipeline.config import settings
from pipeline.errors import CrimeDashboardError, UnknownError, classify
from pipeline.models import CrimeRecord, EnrichedCrimeRecord, PostcodeResolution
from pipeline.months import format_month

logger = logging.getLogger(__name__)


def enrich(record: CrimeRecord, postcode: str) -> EnrichedCrimeRecord:
    """Tag *record* with its source postcode, display date and street name."""
    return EnrichedCrimeRecord(
        **record.model_dump(),
        postcode=postcode,
        display_date=format_month(record.month),
        street_name=record.location.street.name,
    )


class CrimeFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = settings.crime_api_base,
        timeout: float = settings.crime_timeout,
    ):
        self._client = client
        self._base_url = base_url
        self._timeout = timeout

    async def fetch_month(
        self, lat: float, lng: float, month: str
    ) -> list[CrimeRecord]:
        """All crimes near (lat, lng) for *month*. An empty list is valid."""
        try:
            resp = await self._client.get(
                self._base_url,
                params={"lat": lat, "lng": lng, "date": month},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise classify(exc) from exc
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise UnknownError(
                f"Unexpected crime data for {month}: {type(rows).__name__}",
                status=resp.status_code,
            )
        return [CrimeRecord.model_validate(row) for row in rows]

    async def _fetch_postcode(
        self, resolution: PostcodeResolution, month: str
    ) -> list[EnrichedCrimeRecord]:
        try:
            crimes = await self.fetch_month(
                resolution.latitude, resolution.longitude, month
            )
        except (CrimeDashboardError, pydantic.ValidationError) as exc:
            logger.warning(
                "Failed to fetch crime data for %s (%s): %s",
                resolution.postcode, month, exc,
            )
            return []
        return [enrich(crime, resolution.postcode) for crime in crimes]

    async def fetch_for_month(
        self, resolutions: list[PostcodeResolution], month: str
    ) -> list[EnrichedCrimeRecord]:
        """
        Crimes for every valid resolution in *month*, concatenated in
        resolution order. One postcode failing contributes zero records.
        """
        valid = [r for r in resolutions if r.valid]
        if not valid:
            return []

        batches = await asyncio.gather(
            *(self._fetch_postcode(r, month) for r in valid)
        )
        records: list[EnrichedCrimeRecord] = []
        for batch in batches:
            records.extend(batch)
        logger.debug("%s: %d crimes across %d postcodes", month, len(records), len(valid))
        return records
