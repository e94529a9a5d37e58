"""Read-only detectors, one per tracked subsystem.

Each detector returns the snake_case section of the audit snapshot that the
completion model and the KPI read, always including ``score`` (0-100).  A
subsystem that cannot be found, or that the service identity may not see
(403/404), is reported as not installed rather than raised.  Other remote
errors propagate; the auditor records them per section.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import requests
from lxml import etree
from lxml import html as lxml_html

from ..core.analytics import AnalyticsAdminClient, SearchConsoleClient
from ..core.async_utils import run_sync
from ..core.client import TagManagerClient
from ..errors import (
    ContainerNotFoundError,
    NotFoundError,
    PermissionDeniedError,
    RemoteApiError,
)
from ..sync.comparator import (
    CUSTOM_EVENT_TRIGGER_TYPES,
    DATALAYER_VARIABLE_TYPE,
    EVENT_TAG_TYPE,
)
from ..sync.remote import fetch_workspace_state, find_container, normalize_domain

logger = logging.getLogger(__name__)

GA4_CONFIG_TAG_TYPES = frozenset({"gaawc", "googtag"})
FORM_TRIGGER_TYPES = frozenset({"formSubmission", "FORM_SUBMISSION"})

HOTJAR_USER_AGENT = "Mozilla/5.0 (compatible; tagplan-audit/0.4)"
HOTJAR_TIMEOUT = 10

_HJID_INLINE_RE = re.compile(r"hjid\s*[=:]\s*(\d+)", re.IGNORECASE)
_HJSETTINGS_RE = re.compile(r"_hjSettings\s*=\s*\{[^}]*hjid\s*:\s*(\d+)", re.IGNORECASE)
_HOTJAR_SRC_RE = re.compile(r"hotjar[^\"']*?(\d{6,})", re.IGNORECASE)

_UNREACHABLE = (PermissionDeniedError, NotFoundError, ContainerNotFoundError)


def _not_installed(**extra: Any) -> dict[str, Any]:
    return {"installed": False, "score": 0, **extra}


# ---------------------------------------------------------------------------
# Tag container
# ---------------------------------------------------------------------------


def gtm_score(
    tags: list[dict[str, Any]],
    triggers: list[dict[str, Any]],
    variables: list[dict[str, Any]],
) -> int:
    score = 50
    if any(t.get("type") in GA4_CONFIG_TAG_TYPES for t in tags):
        score += 10
    custom = [
        t
        for t in triggers
        if t.get("type") in CUSTOM_EVENT_TRIGGER_TYPES | FORM_TRIGGER_TYPES
    ]
    if len(custom) > 3:
        score += 10
    if sum(1 for v in variables if v.get("type") == DATALAYER_VARIABLE_TYPE) > 5:
        score += 15
    if sum(1 for t in tags if t.get("type") == EVENT_TAG_TYPE) > 3:
        score += 15
    return min(score, 100)


async def detect_gtm(
    client: TagManagerClient, account_id: str | None, domain: str
) -> dict[str, Any]:
    if not account_id:
        return _not_installed(error="Tag Manager account id not configured")
    try:
        container = await find_container(client, account_id, domain)
    except _UNREACHABLE:
        return _not_installed()
    try:
        state = await fetch_workspace_state(client, account_id, container)
    except ContainerNotFoundError:
        return {
            "installed": True,
            "container_id": container.get("publicId"),
            "container_name": container.get("name"),
            "tags": [],
            "triggers": [],
            "variables": [],
            "tags_count": 0,
            "triggers_count": 0,
            "variables_count": 0,
            "score": 50,
        }

    tags = [{"name": t.name, "type": t.type, "tag_id": t.id} for t in state.tags]
    triggers = [
        {"name": t.name, "type": t.type, "trigger_id": t.id} for t in state.triggers
    ]
    variables = [
        {"name": v.name, "type": v.type, "variable_id": v.id}
        for v in state.variables
    ]
    return {
        "installed": True,
        "container_id": state.public_id,
        "container_name": state.container_name,
        "container_path": state.container_path,
        "workspace_path": state.workspace_path,
        "tags": tags,
        "triggers": triggers,
        "variables": variables,
        "tags_count": len(tags),
        "triggers_count": len(triggers),
        "variables_count": len(variables),
        "score": gtm_score(tags, triggers, variables),
    }


# ---------------------------------------------------------------------------
# Custom data layer (derived, no remote call)
# ---------------------------------------------------------------------------


def detect_datalayer(gtm: dict[str, Any]) -> dict[str, Any]:
    """Judge the data layer from the container's variables and triggers."""
    if not gtm.get("installed"):
        return _not_installed()
    dl_vars = [
        v["name"]
        for v in gtm.get("variables") or []
        if v.get("type") == DATALAYER_VARIABLE_TYPE
    ]
    custom_triggers = sum(
        1
        for t in gtm.get("triggers") or []
        if t.get("type") in CUSTOM_EVENT_TRIGGER_TYPES
    )
    if not dl_vars and not custom_triggers:
        return _not_installed()
    score = 30 + min(len(dl_vars) * 10, 60)
    if custom_triggers > 3:
        score += 10
    return {
        "installed": True,
        "variables": dl_vars,
        "variables_count": len(dl_vars),
        "custom_event_triggers": custom_triggers,
        "score": min(score, 100),
    }


# ---------------------------------------------------------------------------
# Analytics property
# ---------------------------------------------------------------------------


def ga4_score(conversions_count: int) -> int:
    score = 40 + min(conversions_count * 15, 45)
    if conversions_count > 0:
        score += 15
    return min(score, 100)


def _stream_matches(stream: dict[str, Any], domain: str) -> bool:
    uri = (stream.get("webStreamData") or {}).get("defaultUri") or ""
    uri = normalize_domain(uri)
    return bool(uri) and (domain in uri or uri in domain)


async def detect_ga4(
    client: AnalyticsAdminClient, account_id: str | None, domain: str
) -> dict[str, Any]:
    if not account_id:
        return _not_installed(error="Analytics account id not configured")
    wanted = normalize_domain(domain)
    try:
        properties = await run_sync(client.list_properties, account_id)
    except _UNREACHABLE:
        return _not_installed()

    for prop in properties:
        try:
            streams = await run_sync(client.list_data_streams, prop["name"])
        except RemoteApiError as e:
            logger.debug("Skipping property %s: %s", prop.get("name"), e)
            continue
        stream = next((s for s in streams if _stream_matches(s, wanted)), None)
        if stream is None:
            continue

        try:
            conversions = await run_sync(client.list_conversion_events, prop["name"])
        except RemoteApiError as e:
            logger.debug("Conversions of %s unavailable: %s", prop["name"], e)
            conversions = []
        web = stream.get("webStreamData") or {}
        return {
            "installed": True,
            "measurement_id": web.get("measurementId"),
            "property_id": prop["name"].split("/")[-1],
            "property_name": prop.get("displayName"),
            "data_stream_id": stream.get("name", "").split("/")[-1] or None,
            "data_stream_name": stream.get("displayName"),
            "default_uri": web.get("defaultUri"),
            "conversions": [{"event_name": c.get("eventName")} for c in conversions],
            "conversions_count": len(conversions),
            "score": ga4_score(len(conversions)),
        }
    return _not_installed()


# ---------------------------------------------------------------------------
# Search indexing
# ---------------------------------------------------------------------------


def _site_matches(site_url: str, domain: str) -> bool:
    url = site_url.lower()
    bare = normalize_domain(url.removeprefix("sc-domain:"))
    return domain in url or (bool(bare) and bare in domain)


def _sitemap_ok(sitemap: dict[str, Any]) -> bool:
    try:
        return int(sitemap.get("errors") or 0) == 0
    except (TypeError, ValueError):
        return False


async def detect_search_console(
    client: SearchConsoleClient, domain: str
) -> dict[str, Any]:
    wanted = normalize_domain(domain)
    not_verified = {"verified": False, "sitemap_submitted": False, "score": 0}
    try:
        sites = await run_sync(client.list_sites)
    except _UNREACHABLE:
        return not_verified
    site = next(
        (s for s in sites if _site_matches(s.get("siteUrl", ""), wanted)), None
    )
    if site is None:
        return not_verified

    try:
        sitemaps = await run_sync(client.list_sitemaps, site["siteUrl"])
    except RemoteApiError as e:
        logger.debug("Sitemaps of %s unavailable: %s", site["siteUrl"], e)
        sitemaps = []
    valid = any(_sitemap_ok(s) for s in sitemaps)
    return {
        "verified": True,
        "site_url": site["siteUrl"],
        "permission_level": site.get("permissionLevel"),
        "sitemap_submitted": bool(sitemaps),
        "sitemaps": [
            {
                "path": s.get("path"),
                "status": "success" if _sitemap_ok(s) else "error",
            }
            for s in sitemaps
        ],
        "score": 100 if valid else 50,
    }


# ---------------------------------------------------------------------------
# Behaviour recording
# ---------------------------------------------------------------------------


def find_hotjar_site_id(page: str) -> str | None:
    """Return the Hotjar site id embedded in *page*, if any."""
    try:
        document = lxml_html.fromstring(page)
    except (ValueError, etree.ParserError):
        return None
    site_id: str | None = None
    for script in document.iter("script"):
        content = script.text or ""
        src = script.get("src") or ""
        for pattern, text in (
            (_HJID_INLINE_RE, content),
            (_HJSETTINGS_RE, content),
            (_HOTJAR_SRC_RE, src),
        ):
            match = pattern.search(text)
            if match:
                site_id = match.group(1)
    return site_id


def _fetch_homepage(session: requests.Session, domain: str) -> str | None:
    bare = normalize_domain(domain).removeprefix("www.")
    for url in (f"https://www.{bare}", f"https://{bare}"):
        try:
            response = session.get(
                url,
                headers={"User-Agent": HOTJAR_USER_AGENT},
                timeout=HOTJAR_TIMEOUT,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.debug("Could not fetch %s: %s", url, e)
            continue
        if response.ok:
            return response.text
    return None


async def detect_hotjar(
    session: requests.Session, domain: str
) -> dict[str, Any]:
    page = await run_sync(_fetch_homepage, session, domain)
    if page is None:
        return _not_installed(error="Site could not be loaded")
    site_id = find_hotjar_site_id(page)
    return {
        "installed": site_id is not None,
        "site_id": site_id,
        "score": 100 if site_id else 0,
    }
