"""Service-account credentials and authorised HTTP sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import google.auth
import requests
from google.auth.exceptions import DefaultCredentialsError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from ..errors import PermissionDeniedError
from .analytics import AnalyticsAdminClient, SearchConsoleClient
from .client import TagManagerClient

logger = logging.getLogger(__name__)

SCOPES: tuple[str, ...] = (
    "https://www.googleapis.com/auth/tagmanager.edit.containers",
    "https://www.googleapis.com/auth/tagmanager.edit.containerversions",
    "https://www.googleapis.com/auth/tagmanager.publish",
    "https://www.googleapis.com/auth/tagmanager.delete.containers",
    "https://www.googleapis.com/auth/analytics.readonly",
    "https://www.googleapis.com/auth/webmasters.readonly",
)


def authorized_session(
    credentials_file: str | None = None,
    scopes: tuple[str, ...] = SCOPES,
) -> requests.Session:
    """Build a ``requests`` session that signs every call.

    Args:
        credentials_file: Service-account JSON key.  When ``None``,
            application default credentials are used.
        scopes: OAuth scopes to request.

    Raises:
        PermissionDeniedError: If no usable credentials are found.
    """
    try:
        if credentials_file:
            path = Path(credentials_file).expanduser()
            credentials = service_account.Credentials.from_service_account_file(
                str(path), scopes=list(scopes)
            )
            logger.info(
                "Using service account %s",
                credentials.service_account_email,
            )
        else:
            credentials, _ = google.auth.default(scopes=list(scopes))
            logger.info("Using application default credentials")
    except (OSError, ValueError, DefaultCredentialsError) as e:
        raise PermissionDeniedError(
            f"Could not load Google credentials: {e}. Set TAGPLAN_CREDENTIALS "
            "to a service-account key file.",
            cause=e,
        ) from e
    return AuthorizedSession(credentials)


@dataclass
class GoogleServices:
    """The API clients a run needs, sharing one authorised session."""

    tagmanager: TagManagerClient
    analytics: AnalyticsAdminClient
    search_console: SearchConsoleClient
    session: requests.Session

    @classmethod
    def from_session(cls, session: requests.Session) -> GoogleServices:
        return cls(
            tagmanager=TagManagerClient(session),
            analytics=AnalyticsAdminClient(session),
            search_console=SearchConsoleClient(session),
            session=session,
        )

