"""Jira CSV source adapter implementing ISourceFetcher.

Wraps JiraCsvClient so the use case never sees aiohttp. A fresh HTTP
session is opened per download; passes are an hour apart, so there is
nothing to gain from keeping one alive.
"""

from ...api.jira_client import JiraCsvClient
from ..domain.ports import ISourceFetcher


class JiraCsvSource(ISourceFetcher):
    """Downloads the export through a JiraCsvClient."""

    def __init__(self, client: JiraCsvClient):
        self.client = client

    async def fetch_text(self) -> str:
        async with self.client:
            return await self.client.fetch_csv()
