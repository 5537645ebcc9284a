"""Breakdowns, table filtering/sorting and map grouping over search results."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, Literal, get_args

import duckdb
import pandas as pd

from pipeline.models import (
    CrimeFilter,
    CrimeStats,
    EnrichedCrimeRecord,
    MapMarkerGroup,
    PostcodeResolution,
    UniqueValues,
)

SortField = Literal[
    "postcode", "month", "street_name", "category", "outcome", "display_date",
]
SORTABLE_FIELDS: tuple[str, ...] = get_args(SortField)
DEFAULT_MAP_CENTRE = (51.505, -0.09)

SortDirection = Literal["asc", "desc"]


def to_frame(records: list[EnrichedCrimeRecord]) -> pd.DataFrame:
    """Flatten records into the columns the table, charts and map need."""
    return pd.DataFrame(
        {
            "postcode": [r.postcode for r in records],
            "month": [r.month for r in records],
            "display_date": [r.display_date for r in records],
            "street_name": [r.street_name for r in records],
            "category": [r.category for r in records],
            "outcome": [r.outcome for r in records],
            "latitude": [r.location.latitude for r in records],
            "longitude": [r.location.longitude for r in records],
        },
        columns=[
            "postcode", "month", "display_date", "street_name",
            "category", "outcome", "latitude", "longitude",
        ],
    )


def _breakdown(con: duckdb.DuckDBPyConnection, column: str) -> dict[str, int]:
    rows = con.execute(f"""
        SELECT {column}, COUNT(*) AS count
        FROM crimes
        GROUP BY {column}
        ORDER BY count DESC, {column}
    """).fetchall()
    return {label: int(count) for label, count in rows}


def stats(records: list[EnrichedCrimeRecord]) -> CrimeStats:
    """Total plus category and outcome counts ('Unknown' for no outcome)."""
    if not records:
        return CrimeStats(total_crimes=0, category_breakdown={}, outcome_breakdown={})

    crimes = to_frame(records)[["category", "outcome"]]
    con = duckdb.connect()
    try:
        con.register("crimes", crimes)
        total = con.execute("SELECT COUNT(*) FROM crimes").fetchone()[0]
        return CrimeStats(
            total_crimes=int(total),
            category_breakdown=_breakdown(con, "category"),
            outcome_breakdown=_breakdown(con, "outcome"),
        )
    finally:
        con.close()


def filter_records(
    records: Iterable[EnrichedCrimeRecord], crime_filter: CrimeFilter
) -> list[EnrichedCrimeRecord]:
    """Keep records matching every non-empty filter field exactly."""
    out: list[EnrichedCrimeRecord] = []
    for r in records:
        if crime_filter.postcode and r.postcode != crime_filter.postcode:
            continue
        if crime_filter.category and r.category != crime_filter.category:
            continue
        if crime_filter.outcome and r.outcome != crime_filter.outcome:
            continue
        out.append(r)
    return out


def sort_records(
    records: Iterable[EnrichedCrimeRecord],
    field: SortField = "month",
    direction: SortDirection = "desc",
) -> list[EnrichedCrimeRecord]:
    """
    Stable sort on *field*. A None on either side compares equal, so such
    records keep their relative position against their neighbours.
    """
    if field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by '{field}'")
    sign = 1 if direction == "asc" else -1

    def compare(a: EnrichedCrimeRecord, b: EnrichedCrimeRecord) -> int:
        av, bv = getattr(a, field), getattr(b, field)
        if av is None or bv is None:
            return 0
        if av < bv:
            return -sign
        if av > bv:
            return sign
        return 0

    return sorted(records, key=cmp_to_key(compare))


def unique_values(records: list[EnrichedCrimeRecord]) -> UniqueValues:
    """Distinct filter options, in first-seen order."""
    return UniqueValues(
        postcodes=list(dict.fromkeys(r.postcode for r in records)),
        categories=list(dict.fromkeys(r.category for r in records)),
        outcomes=list(dict.fromkeys(r.outcome for r in records)),
    )


def group_by_location(records: list[EnrichedCrimeRecord]) -> list[MapMarkerGroup]:
    """Bundle crimes that share an exact coordinate into one map marker."""
    groups: dict[tuple[str, str], MapMarkerGroup] = {}
    for r in records:
        lat, lng = r.location.latitude, r.location.longitude
        if lat is None or lng is None:
            continue
        try:
            position = (float(lat), float(lng))
        except ValueError:
            continue
        group = groups.get((lat, lng))
        if group is None:
            group = groups[(lat, lng)] = MapMarkerGroup(
                latitude=position[0], longitude=position[1],
                postcode=r.postcode, crimes=[],
            )
        group.crimes.append(r)
    return list(groups.values())


def map_centre(resolutions: list[PostcodeResolution]) -> tuple[float, float]:
    """Mean coordinate of the valid resolutions, London when there are none."""
    valid = [r for r in resolutions if r.valid]
    if not valid:
        return DEFAULT_MAP_CENTRE
    return (
        sum(r.latitude for r in valid) / len(valid),
        sum(r.longitude for r in valid) / len(valid),
    )
