
# Paginated members client for the campaign members endpoint.

# The endpoint is JSON:API: each page carries "data" (member resources),
# "included" (users and tiers referenced by those members) and
# links.next, which already embeds every query parameter. Query params are
# therefore only sent on the first request.
#
# Any failure aborts the whole fetch with SourceError. A partial member list
# would make every member on the missing pages look removed.

import asyncio
import logging
from typing import Any, Protocol

import aiohttp

from membership_monitor.config import MEMBER_FIELDS, PAGE_SIZE, MonitorSettings
from membership_monitor.exceptions import SourceError
from membership_monitor.models import MembershipRecord
from membership_monitor.parser import parse_members

log = logging.getLogger(__name__)


class MembershipSource(Protocol):
    """Anything that can produce the current full member list."""

    async def fetch_all(self) -> list[MembershipRecord]:
        ...


class PatreonMembershipSource:
    """
    Fetches every member of one campaign, following links.next until the
    last page, and joins them with their included users and tiers.

    Shares the caller's aiohttp.ClientSession; it never closes it.
    """

    def __init__(self, session: aiohttp.ClientSession, settings: MonitorSettings) -> None:
        self._session = session
        self._settings = settings
        self._headers = {
            "Authorization": f"Bearer {settings.access_token}",
            "Accept": "application/json",
        }

    @staticmethod
    def first_page_params() -> dict[str, str]:
        return {
            "include": "user,currently_entitled_tiers",
            "fields[member]": ",".join(MEMBER_FIELDS),
            "fields[user]": "social_connections",
            "fields[tier]": "title,amount_cents",
            "page[count]": str(PAGE_SIZE),
        }

    async def fetch_all(self) -> list[MembershipRecord]:
        members: list[dict] = []
        included: list[dict] = []
        seen_urls: set[str] = set()

        url: str | None = self._settings.members_url
        params: dict[str, str] | None = self.first_page_params()

        while url:
            seen_urls.add(url)
            page = await self._get_page(url, params)

            members.extend(page["data"])
            if isinstance(page.get("included"), list):
                included.extend(page["included"])

            next_url = (page.get("links") or {}).get("next")
            if next_url in seen_urls:
                log.warning("Pagination loop detected at %s, stopping", next_url)
                break
            url, params = next_url or None, None

        records = parse_members(members, included)
        log.debug("Fetched %d member(s) over %d page(s)", len(records), len(seen_urls))
        return records

    async def _get_page(self, url: str, params: dict[str, str] | None) -> dict[str, Any]:
        try:
            async with self._session.get(
                url,
                headers=self._headers,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self._settings.request_timeout),
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    log.warning("HTTP error fetching %s: %s %s", url, resp.status, body[:500])
                    raise SourceError(
                        f"HTTP {resp.status} from members endpoint: {body[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
                data = await resp.json(content_type=None)

        except SourceError:
            raise
        except asyncio.TimeoutError as exc:
            log.warning("Timeout fetching %s", url)
            raise SourceError(f"Timed out fetching {url}", url=url) from exc
        except aiohttp.ClientError as exc:
            log.warning("Transport error fetching %s: %s", url, exc)
            raise SourceError(f"Request to {url} failed: {exc}", url=url) from exc
        except ValueError as exc:
            raise SourceError(f"Invalid JSON from {url}", url=url) from exc

        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            log.warning("Unexpected response structure from %s: %.200r", url, data)
            raise SourceError(f"Unexpected response structure from {url}", url=url)
        return data
