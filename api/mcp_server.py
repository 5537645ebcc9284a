"""MCP server for UK street-level crime searches."""

from __future__ import annotations

from fastmcp import FastMCP

from api import queries
from pipeline.config import configure_logging
from pipeline.months import current_month

mcp = FastMCP(
    "UK Crime Dashboard",
    instructions=(
        "Street-level crime records from data.police.uk around UK postcodes. "
        "Call search_crimes with comma-separated postcodes and an inclusive "
        "YYYY-MM month range; police.uk data usually lags two to three months. "
        "Outcome 'Unknown' means no outcome has been recorded. get_history "
        "lists recently searched postcodes."
    ),
)


@mcp.tool()
async def search_crimes(
    postcodes: str,
    date_from: str | None = None,
    date_to: str | None = None,
    trigger: int = 0,
    category: str | None = None,
    outcome: str | None = None,
) -> dict:
    """
    Crime stats and records for postcodes over a month range.

    Results are cached per postcodes and trigger for five minutes; pass a
    new trigger to refetch the same postcodes for a different range.
    """
    return await queries.search_crimes(
        postcodes,
        date_from or current_month(),
        date_to or current_month(),
        trigger=trigger,
        category=category,
        outcome=outcome,
    )


@mcp.tool()
def get_history() -> list[dict]:
    """Recently searched postcodes, newest first."""
    return queries.get_history()


def main():
    configure_logging()
    mcp.run()


if __name__ == "__main__":
    main()
