"""UK postcode parsing and coordinate resolution via the getthedata lookup."""

from __future__ import annotations

import asyncio
import logging
import re

import httpx

from pipeline.config import settings
from pipeline.errors import CrimeDashboardError, NotFoundError, classify
from pipeline.models import PostcodeResolution

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def format_postcode(raw: str) -> str:
    """Strip all whitespace and upper-case, e.g. 'sw1a 1aa' -> 'SW1A1AA'."""
    return _WHITESPACE_RE.sub("", raw).upper()


def parse_postcode_input(text: str) -> list[str]:
    """Split comma-separated user input into formatted, non-empty postcodes."""
    return [pc for pc in (format_postcode(part) for part in text.split(",")) if pc]


class PostcodeResolver:
    """
    Resolves postcodes to WGS84 coordinates.

    Failures never escape ``resolve_one``/``resolve_many``; they come back
    as resolutions with ``valid=False`` and a (0, 0) sentinel coordinate.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = settings.postcode_api_base,
        timeout: float = settings.postcode_timeout,
    ):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def lookup(self, postcode: str) -> dict:
        """
        Fetch the lookup service's ``data`` object for *postcode*.

        Raises NotFoundError, NetworkError or UnknownError.
        """
        try:
            resp = await self._client.get(
                f"{self._base_url}/{postcode}", timeout=self._timeout
            )
            if resp.status_code == 404:
                raise NotFoundError(postcode)
            resp.raise_for_status()
            body = resp.json()
        except CrimeDashboardError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            raise classify(exc) from exc

        if not isinstance(body, dict) or body.get("status") != "match":
            raise NotFoundError(postcode)
        return body.get("data") or {}

    async def resolve_one(self, raw: str) -> PostcodeResolution:
        postcode = format_postcode(raw)
        try:
            data = await self.lookup(postcode)
            return PostcodeResolution(
                postcode=data.get("postcode") or postcode,
                latitude=float(data["latitude"]),
                longitude=float(data["longitude"]),
                valid=True,
            )
        except (CrimeDashboardError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Postcode %s did not resolve: %s", raw, exc)
            return PostcodeResolution.invalid(raw)

    async def resolve_many(self, raws: list[str]) -> list[PostcodeResolution]:
        """Resolve every postcode concurrently; output order matches input."""
        results = await asyncio.gather(
            *(self.resolve_one(raw) for raw in raws), return_exceptions=True
        )
        resolutions: list[PostcodeResolution] = []
        for raw, result in zip(raws, results):
            if isinstance(result, BaseException):
                logger.warning("Postcode %s lookup raised: %r", raw, result)
                resolutions.append(PostcodeResolution.invalid(raw))
            else:
                resolutions.append(result)
        return resolutions
