"""Read-only REST clients for the analytics property and search indexing."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .client import GoogleApiClient


class AnalyticsAdminClient(GoogleApiClient):
    """Google Analytics Admin API: properties, data streams, conversions."""

    base_url = "https://analyticsadmin.googleapis.com/v1beta"

    def list_account_summaries(self) -> list[dict[str, Any]]:
        return self._list("accountSummaries", "accountSummaries")

    def list_properties(self, account_id: str) -> list[dict[str, Any]]:
        return self._list(
            "properties",
            "properties",
            params={"filter": f"parent:accounts/{account_id}"},
        )

    def list_data_streams(self, property_name: str) -> list[dict[str, Any]]:
        """List streams of *property_name* (``properties/123``)."""
        return self._list(f"{property_name}/dataStreams", "dataStreams")

    def list_conversion_events(
        self, property_name: str
    ) -> list[dict[str, Any]]:
        return self._list(
            f"{property_name}/conversionEvents", "conversionEvents"
        )


class SearchConsoleClient(GoogleApiClient):
    """Search Console (webmasters v3): verified sites and sitemaps."""

    base_url = "https://www.googleapis.com/webmasters/v3"

    def list_sites(self) -> list[dict[str, Any]]:
        return self._list("sites", "siteEntry")

    def list_sitemaps(self, site_url: str) -> list[dict[str, Any]]:
        return self._list(f"sites/{quote(site_url, safe='')}/sitemaps", "sitemap")
