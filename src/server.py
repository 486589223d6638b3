"""SlidesGPT MCP server — FastMCP tools and widgets behind an SSE transport.

Exposes:
- GET  /mcp            — SSE stream, one MCP session per connection
- POST /mcp/messages/  — client messages, routed to their stream by ?session_id=
- GET  /.well-known/openai-apps-challenge — domain verification token
- GET  /healthz        — health check with session and presentation counts

The server is a thin adapter — every tool call is handed to the
SlideToolDispatcher, which owns validation, presentation continuity and
error handling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.resources import TextResource
from mcp.types import CallToolResult, ToolAnnotations
from pydantic import Field
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from src import config
from src.dispatcher import SlideToolDispatcher
from src.middleware import ToolLoggingMiddleware
from src.models import PresentationIdField, Slide
from src.registry import PresentationRegistry, run_sweeper
from src.slides_api import SlidesApiClient
from src.themes import ThemeId
from src.widgets import MIME_TYPE, Widget, load_widgets

logger = logging.getLogger(__name__)

SSE_PATH = "/mcp"
MESSAGE_PATH = "/mcp/messages/"
WELL_KNOWN_PATH = "/.well-known/openai-apps-challenge"
HEALTH_PATH = "/healthz"

SERVER_NAME = "SlidesGPT"

SERVER_INSTRUCTIONS = """\
Create professional presentation slides with AI-powered design and theming.
Generate slides with rich content, apply beautiful themes, and download
high-quality images. Always pass the presentation_id returned by a previous
slide call to keep adding to the same presentation."""

CREATE_SLIDE_DESCRIPTION = """\
Create EXACTLY ONE presentation slide. Use this tool ONLY when creating a single slide.

CRITICAL RULES:
- For creating 2 or more slides at once, you MUST use "create_slide_carousel" instead - NEVER call this tool multiple times
- The image_id is OPTIONAL - if omitted or empty, the system automatically selects the best matching image
- You do NOT need to call search_images first - just provide slide content and let the system handle images
- When adding to an existing presentation, ALWAYS pass the presentation_id from the previous response"""

CREATE_CAROUSEL_DESCRIPTION = """\
Create MULTIPLE presentation slides at once and display them in a carousel viewer.

WHEN TO USE THIS TOOL:
- User asks to "add 3 more slides" → Use this tool with 3 slides in the array
- User asks for "a presentation about X" → Use this tool with all slides
- ANY request involving 2 or more slides → Use this tool

CRITICAL RULES:
- ALWAYS use this for creating 2+ slides - NEVER call create_slide multiple times
- The image_id is OPTIONAL for each slide - the system automatically selects best matching images
- When adding to an existing presentation, ALWAYS pass the presentation_id from the previous response"""

SEARCH_IMAGES_DESCRIPTION = """\
Search for professional images matching a caption.

WHEN TO USE:
- ONLY when a user explicitly asks to see image options or wants to choose a specific image
- OPTIONAL: create_slide and create_slide_carousel auto-select images when image_id is omitted

The returned image_id can be passed to create_slide or create_slide_carousel."""

APPLY_THEME_DESCRIPTION = """\
Apply a visual theme to re-style the entire presentation.

WHEN TO USE:
- User says "apply Tokyo Dark theme", "change theme to Paris", etc.

AVAILABLE THEMES (18 total):
• Urban: copenhagen, tokyo, paris, berlin, new-york, la, zurich, shanghai (each has -light and -dark variants)
• Gradient: cosmic-pulse-light/dark

REQUIRES: presentation_id from previous slide creation. This re-renders all slides with the new theme."""

SHOW_THEME_PICKER_DESCRIPTION = """\
Display an interactive visual theme picker widget.

WHEN TO USE:
- User says "show themes", "what themes are available", "let me pick a theme"

Shows a widget with 18 themes across 2 categories (Urban, Gradient)."""


# ── Sessions ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionRecord:
    id: str
    peer: str | None
    opened_at: datetime


class SessionTracker:
    """Book-keeping for open SSE streams.

    Message routing itself is done by ``SseServerTransport``; this only
    records which streams are live so they can be logged and counted.
    """

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self._sessions: dict[str, SessionRecord] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def open(self, peer: str | None = None) -> SessionRecord:
        record = SessionRecord(id=secrets.token_hex(8), peer=peer, opened_at=self._clock())
        self._sessions[record.id] = record
        logger.info("[Session] Opened %s from %s (%d active)", record.id, peer or "?", len(self))
        return record

    def close(self, session_id: str) -> None:
        record = self._sessions.pop(session_id, None)
        if record is None:
            return
        duration = self._clock() - record.opened_at
        logger.info(
            "[Session] Closed %s after %.1fs (%d active)",
            session_id,
            duration.total_seconds(),
            len(self),
        )

    @contextlib.contextmanager
    def track(self, peer: str | None = None) -> Iterator[SessionRecord]:
        record = self.open(peer)
        try:
            yield record
        finally:
            self.close(record.id)


# ── MCP server ────────────────────────────────────────────────────────


def create_mcp_server(
    dispatcher: SlideToolDispatcher,
    widgets: Mapping[str, Widget],
    *,
    host: str = config.HOST,
) -> FastMCP:
    """Register the SlidesGPT tools and widget resources on a FastMCP server."""
    mcp = FastMCP(
        SERVER_NAME,
        instructions=SERVER_INSTRUCTIONS,
        host=host,
        sse_path=SSE_PATH,
        message_path=MESSAGE_PATH,
    )

    @mcp.tool(
        name="create_slide",
        title="Create Slide",
        description=CREATE_SLIDE_DESCRIPTION,
        annotations=ToolAnnotations(destructiveHint=False, openWorldHint=True, readOnlyHint=False),
        meta=widgets["create_slide"].meta(),
        structured_output=False,
    )
    async def create_slide(
        slide_data: Annotated[Slide, Field(description="Slide content structure")],
        presentation_id: PresentationIdField = "",
    ) -> CallToolResult:
        return await dispatcher.call(
            "create_slide", {"presentation_id": presentation_id, "slide_data": slide_data}
        )

    @mcp.tool(
        name="create_slide_carousel",
        title="Create Slides Carousel",
        description=CREATE_CAROUSEL_DESCRIPTION,
        annotations=ToolAnnotations(destructiveHint=False, openWorldHint=True, readOnlyHint=False),
        meta=widgets["create_slide_carousel"].meta(),
        structured_output=False,
    )
    async def create_slide_carousel(
        slides_data: Annotated[
            list[Slide],
            Field(description="Array of slides to create. Use this for 2+ slides."),
        ],
        presentation_id: PresentationIdField = "",
    ) -> CallToolResult:
        return await dispatcher.call(
            "create_slide_carousel",
            {"presentation_id": presentation_id, "slides_data": slides_data},
        )

    @mcp.tool(
        name="search_images",
        title="Search Images",
        description=SEARCH_IMAGES_DESCRIPTION,
        annotations=ToolAnnotations(destructiveHint=False, openWorldHint=True, readOnlyHint=True),
        structured_output=False,
    )
    async def search_images(
        caption: Annotated[str, Field(description="Search terms for finding relevant images")],
    ) -> CallToolResult:
        return await dispatcher.call("search_images", {"caption": caption})

    @mcp.tool(
        name="apply_theme",
        title="Apply Theme",
        description=APPLY_THEME_DESCRIPTION,
        annotations=ToolAnnotations(destructiveHint=False, openWorldHint=True, readOnlyHint=False),
        structured_output=False,
    )
    async def apply_theme(
        presentation_id: Annotated[
            str, Field(description="The presentation ID returned from slide creation.")
        ],
        theme_id: Annotated[ThemeId, Field(description="The theme ID to apply.")],
    ) -> CallToolResult:
        return await dispatcher.call(
            "apply_theme", {"presentation_id": presentation_id, "theme_id": theme_id}
        )

    @mcp.tool(
        name="show_theme_picker",
        title="Show Theme Picker",
        description=SHOW_THEME_PICKER_DESCRIPTION,
        annotations=ToolAnnotations(destructiveHint=False, openWorldHint=False, readOnlyHint=True),
        meta=widgets["theme-picker"].meta(),
        structured_output=False,
    )
    async def show_theme_picker(
        presentation_id: Annotated[
            str, Field(description="The presentation ID to show themes for.")
        ],
        recommended_theme_id: Annotated[
            str | None,
            Field(description="Optional theme ID (or content type such as 'finance') to recommend."),
        ] = None,
    ) -> CallToolResult:
        return await dispatcher.call(
            "show_theme_picker",
            {"presentation_id": presentation_id, "recommended_theme_id": recommended_theme_id},
        )

    for widget in widgets.values():
        mcp.add_resource(
            TextResource(
                uri=widget.template_uri,
                name=widget.title,
                description=f"{widget.title} widget markup",
                mime_type=MIME_TYPE,
                text=widget.html,
            )
        )

    return mcp


# ── HTTP app ──────────────────────────────────────────────────────────


class SessionTrackingMiddleware:
    """ASGI middleware recording every SSE stream for the lifetime of its request."""

    def __init__(self, app: ASGIApp, sessions: SessionTracker):
        self.app = app
        self.sessions = sessions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "GET" or scope["path"] != SSE_PATH:
            await self.app(scope, receive, send)
            return
        client = scope.get("client")
        with self.sessions.track(client[0] if client else None):
            await self.app(scope, receive, send)


def create_app(
    mcp: FastMCP,
    registry: PresentationRegistry,
    client: SlidesApiClient,
    *,
    verification_token: str = config.OPENAI_VERIFICATION_TOKEN,
    cleanup_interval: float = config.CLEANUP_INTERVAL_SECONDS,
    sessions: SessionTracker | None = None,
) -> Starlette:
    """Build the Starlette app serving the MCP SSE transport."""
    sessions = sessions or SessionTracker()

    @mcp.custom_route(WELL_KNOWN_PATH, methods=["GET"])
    async def verification(request: Request) -> Response:
        return PlainTextResponse(verification_token)

    @mcp.custom_route(HEALTH_PATH, methods=["GET"])
    async def health(request: Request) -> Response:
        return JSONResponse({
            "status": "ok",
            "sessions": len(sessions),
            "presentations": len(registry),
        })

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        sweeper = asyncio.create_task(run_sweeper(registry, cleanup_interval))
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await client.aclose()

    app = mcp.sse_app()
    app.router.lifespan_context = lifespan
    app.add_middleware(SessionTrackingMiddleware, sessions=sessions)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["content-type"],
    )
    app.state.sessions = sessions
    app.state.registry = registry
    return app


def build_app() -> Starlette:
    """Wire the app from ``src.config``. Raises WidgetAssetsError if assets are missing."""
    widgets = load_widgets(config.ASSETS_DIR)
    registry = PresentationRegistry(ttl=timedelta(hours=config.PRESENTATION_TTL_HOURS))
    client = SlidesApiClient(config.SLIDESGPT_BASE_URL, timeout=config.SLIDESGPT_TIMEOUT)
    dispatcher = SlideToolDispatcher(
        registry,
        client,
        image_search_mode=config.IMAGE_SEARCH_MODE,
        image_search_limit=config.IMAGE_SEARCH_LIMIT,
        middleware=[ToolLoggingMiddleware()],
        widgets=widgets,
    )
    mcp = create_mcp_server(dispatcher, widgets)
    return create_app(mcp, registry, client)
