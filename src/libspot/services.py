"""Assembles the long-lived objects shared by the server and the CLI.

One HTTP client, one hours service, one orchestrator and one document
cache per process, so every request shares the same caches.
"""

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import httpx
from jinja2 import Environment, FileSystemLoader

from libspot.aggregation.bootstrap import BootstrapSnapshotCache
from libspot.aggregation.orchestrator import AggregationOrchestrator
from libspot.core.config import FacilityConfig, Settings, get_settings, load_facilities, local_today
from libspot.sources.browser import PageRenderer, PlaywrightRenderer
from libspot.sources.hours import HoursService
from libspot.sources.http import UpstreamClient
from libspot.sources.rendered import RenderedWidgetAdapter
from libspot.sources.structured import StructuredApiAdapter

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
DEFAULT_TEMPLATE = "index.html"
APP_TITLE = "LibrarySpot"


def render_document_shell(
    facilities: Iterable[FacilityConfig],
    template_path: Path | None = None,
) -> str:
    """Render the HTML shell the bootstrap payload is injected into.

    Args:
        facilities: Facilities listed in the no-script fallback
        template_path: Custom template file (defaults to the packaged one)
    """
    if template_path is None:
        directory, name = _TEMPLATES_DIR, DEFAULT_TEMPLATE
    else:
        directory, name = template_path.parent, template_path.name

    env = Environment(loader=FileSystemLoader(directory), autoescape=True)
    return env.get_template(name).render(title=APP_TITLE, facilities=list(facilities))


@dataclass
class Services:
    """Everything a request handler needs."""

    settings: Settings
    facilities: tuple[FacilityConfig, ...]
    client: UpstreamClient
    hours: HoursService
    orchestrator: AggregationOrchestrator
    bootstrap: BootstrapSnapshotCache


@asynccontextmanager
async def open_services(
    settings: Settings | None = None,
    *,
    facilities: Iterable[FacilityConfig] | None = None,
    renderer: PageRenderer | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[Services]:
    """Build the service graph and close the HTTP client on exit.

    Args:
        settings: Settings override (defaults to environment settings)
        facilities: Facility override (defaults to the config file)
        renderer: Page renderer override (defaults to headless Chromium)
        transport: HTTP transport override
    """
    settings = settings or get_settings()
    if facilities is None:
        facilities = load_facilities(settings.facilities_path)
    facilities = tuple(facilities)

    async with UpstreamClient(
        settings.http_timeout,
        attempts=settings.retry_attempts,
        retry_wait=settings.retry_wait,
        transport=transport,
    ) as client:
        hours = HoursService(
            client,
            widget_url=settings.hours_widget_url,
            iid=settings.hours_widget_iid,
            ttl=settings.hours_ttl,
        )
        renderer = renderer or PlaywrightRenderer(
            navigation_timeout=settings.render_timeout,
            wait_timeout=settings.render_wait_timeout,
            settle=settings.render_settle,
            executable_path=settings.browser_executable,
        )
        orchestrator = AggregationOrchestrator(
            facilities,
            structured=StructuredApiAdapter(client, hours, api_url=settings.room_api_url),
            rendered=RenderedWidgetAdapter(renderer),
            ttl=settings.snapshot_ttl,
            source_timeout=settings.source_timeout,
            population_timeout=settings.population_timeout,
            today=lambda: local_today(settings),
        )
        bootstrap = BootstrapSnapshotCache(
            orchestrator,
            render_document_shell(facilities, settings.document_template),
            days=settings.bootstrap_days,
            ttl=settings.bootstrap_ttl,
        )
        logger.info(f"Services ready for {len(facilities)} facilities")
        yield Services(
            settings=settings,
            facilities=facilities,
            client=client,
            hours=hours,
            orchestrator=orchestrator,
            bootstrap=bootstrap,
        )
