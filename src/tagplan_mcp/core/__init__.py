"""Google API clients shared between the CLI and the MCP server."""

from .analytics import AnalyticsAdminClient, SearchConsoleClient
from .async_utils import gather_all, run_sync
from .auth import GoogleServices, authorized_session
from .client import GoogleApiClient, TagManagerClient

__all__ = [
    "AnalyticsAdminClient",
    "GoogleApiClient",
    "GoogleServices",
    "SearchConsoleClient",
    "TagManagerClient",
    "authorized_session",
    "gather_all",
    "run_sync",
]
