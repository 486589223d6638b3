"""Tool dispatcher — the SlidesGPT tools on top of the registry and API client.

``SlideToolDispatcher.call`` is the single entry point for a tool invocation.
It validates arguments, runs the tool through the middleware chain and always
returns a ``CallToolResult``: failures come back flagged with ``isError``
instead of propagating to the transport.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, ValidationError

from src.middleware import ToolCallContext, ToolMiddleware
from src.models import (
    ApplyThemeInput,
    CreateSlideCarouselInput,
    CreateSlideInput,
    GenerateResult,
    SearchImagesInput,
    ShowThemePickerInput,
    Slide,
)
from src.registry import PresentationContext, PresentationNotFound, PresentationRegistry
from src.slides_api import SlidesApiClient, SlidesApiError, extract_deck_id, normalize_url
from src.themes import CATEGORIES, build_theme_options, describe_theme, is_theme_id, recommend_theme
from src.widgets import WIDGET_SPECS, Widget

logger = logging.getLogger(__name__)

SEARCH_MODES = ("auto", "pick")

_CATEGORY_BLURBS = {
    "urban": "City-inspired, bold, modern",
    "gradient": "Vibrant, creative, eye-catching",
}

THEME_OFFER_TEXT = (
    "\n\n🎨 **Theme Options Available!**\n"
    "Would you like to customize your presentation's look? We have 18 themes across "
    '2 categories (Urban, Gradient). Say "show themes" or "use [theme name]" to apply a theme.'
)


class SlideToolError(Exception):
    """A user-facing tool failure."""


class MalformedInput(SlideToolError):
    @classmethod
    def from_validation_error(cls, tool: str, exc: ValidationError) -> MalformedInput:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in exc.errors()
        )
        return cls(f"Invalid arguments for {tool}: {problems}")


class DeckNotReady(SlideToolError):
    def __init__(self, presentation_id: str):
        super().__init__(
            f"No deck ID available for presentation: {presentation_id}. "
            "Please create at least one slide first."
        )
        self.presentation_id = presentation_id


class UnknownTool(SlideToolError):
    pass


def _error_result(exc: Exception) -> CallToolResult:
    if isinstance(exc, PresentationNotFound):
        message = (
            f"Presentation not found: {exc.presentation_id}. Make sure you're using "
            "the correct presentation_id from slide creation."
        )
    elif isinstance(exc, (SlideToolError, SlidesApiError)):
        message = str(exc)
    else:
        message = f"Error: {exc}"
    return CallToolResult(
        content=[TextContent(type="text", text=f"❌ {message}")],
        structuredContent={"error": type(exc).__name__, "message": message},
        isError=True,
    )


def _slide_summary(slide: Slide, result: GenerateResult) -> dict[str, Any]:
    return {
        "title": slide.title,
        "subtitle": slide.subtitle,
        "slidenum": slide.slidenum,
        "image_url": result.image_url,
        "presentation_view_url": normalize_url(result.presentation_view_url),
    }


def _continuity_reminder(presentation_id: str) -> str:
    return (
        f"🔑 IMPORTANT - Save this Presentation ID:\n{presentation_id}\n\n"
        "For any additional slides in THIS conversation, you MUST include:\n"
        f'"presentation_id": "{presentation_id}"\nin the tool parameters.'
    )


class SlideToolDispatcher:
    """Routes tool calls to handlers bound to one registry and API client."""

    def __init__(
        self,
        registry: PresentationRegistry,
        client: SlidesApiClient,
        *,
        image_search_mode: str = "auto",
        image_search_limit: int = 5,
        middleware: Sequence[ToolMiddleware] = (),
        widgets: Mapping[str, Widget] | None = None,
    ):
        if image_search_mode not in SEARCH_MODES:
            raise ValueError(
                f"image_search_mode must be one of {SEARCH_MODES}, got {image_search_mode!r}"
            )
        self.registry = registry
        self.client = client
        self.image_search_mode = image_search_mode
        self.image_search_limit = image_search_limit
        self._middleware = list(middleware)
        self._widgets = dict(widgets) if widgets else {w.id: w for w in WIDGET_SPECS}
        self._tools: dict[str, tuple[type[BaseModel], Callable[[Any], Awaitable[CallToolResult]]]] = {
            "create_slide": (CreateSlideInput, self._create_slide),
            "create_slide_carousel": (CreateSlideCarouselInput, self._create_slide_carousel),
            "search_images": (SearchImagesInput, self._search_images),
            "apply_theme": (ApplyThemeInput, self._apply_theme),
            "show_theme_picker": (ShowThemePickerInput, self._show_theme_picker),
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    async def call(self, name: str, arguments: Mapping[str, Any] | None = None) -> CallToolResult:
        """Run tool ``name`` and return its result. Never raises."""
        context = ToolCallContext(name=name, arguments=dict(arguments or {}))

        async def _run() -> None:
            context.result = await self._invoke(name, context.arguments)

        chain: Callable[[], Awaitable[None]] = _run
        for middleware in reversed(self._middleware):
            chain = functools.partial(middleware.process, context, chain)
        try:
            await chain()
        except Exception as exc:
            logger.exception("Middleware failed for tool %s", name)
            return _error_result(exc)

        if context.result is None:
            return _error_result(SlideToolError(f"Tool {name} produced no result"))
        return context.result

    async def _invoke(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        try:
            entry = self._tools.get(name)
            if entry is None:
                raise UnknownTool(f"Unknown tool: {name}")
            input_model, handler = entry
            try:
                args = input_model.model_validate(arguments)
            except ValidationError as exc:
                raise MalformedInput.from_validation_error(name, exc) from exc
            return await handler(args)
        except (SlideToolError, SlidesApiError, PresentationNotFound) as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return _error_result(exc)
        except Exception as exc:
            logger.exception("Error in tool %s", name)
            return _error_result(exc)

    # ── Shared helpers ────────────────────────────────────────────────

    def _result(
        self, text: str, structured: dict[str, Any], widget_id: str | None = None
    ) -> CallToolResult:
        extra: dict[str, Any] = {}
        if widget_id is not None:
            extra["_meta"] = self._widgets[widget_id].meta()
        return CallToolResult(
            content=[TextContent(type="text", text=text)],
            structuredContent=structured,
            **extra,
        )

    @staticmethod
    def _record_deck(presentation: PresentationContext, result: GenerateResult) -> None:
        if presentation.record_deck_id(extract_deck_id(result.presentation_view_url)):
            logger.info("[Deck] %s -> %s", presentation.presentation_id, presentation.deck_id)

    @staticmethod
    def _offer_theme_once(presentation: PresentationContext) -> dict[str, Any] | None:
        if presentation.claim_theme_offer():
            return build_theme_options()
        return None

    @staticmethod
    def _resolve_recommendation(value: str | None) -> str | None:
        """Accept either a theme id or a content type like "finance"."""
        if not value:
            return None
        if is_theme_id(value):
            return value
        recommended = recommend_theme(value)
        if recommended is None:
            logger.debug("Ignoring unknown recommended theme %r", value)
        return recommended

    # ── Tools ─────────────────────────────────────────────────────────

    async def _create_slide(self, args: CreateSlideInput) -> CallToolResult:
        presentation = self.registry.resolve_or_create(args.presentation_id)
        slide = args.slide_data

        async with presentation.lock:
            result = await self.client.generate_slide(slide, presentation)
            self._record_deck(presentation, result)
            theme_options = self._offer_theme_once(presentation)

        text = (
            f"✅ Slide {slide.slidenum} created successfully!\n\n"
            f'Title: "{slide.title}"\nSubtitle: {slide.subtitle}\n\n'
            f"{_continuity_reminder(presentation.presentation_id)}"
        )
        structured: dict[str, Any] = {
            "presentation_id": presentation.presentation_id,
            "deck_id": presentation.deck_id,
            "theme_id": presentation.theme_id,
            "slide_count": presentation.slide_count,
            "slide": _slide_summary(slide, result),
        }
        if theme_options is not None:
            text += THEME_OFFER_TEXT
            structured["theme_options"] = theme_options
        return self._result(text, structured, "create_slide")

    async def _create_slide_carousel(self, args: CreateSlideCarouselInput) -> CallToolResult:
        presentation = self.registry.resolve_or_create(args.presentation_id)
        logger.info("Creating %d slides...", len(args.slides_data))

        slides = []
        async with presentation.lock:
            # Generated in input order; the first response seeds deck_id.
            for slide in args.slides_data:
                result = await self.client.generate_slide(slide, presentation)
                self._record_deck(presentation, result)
                slides.append(_slide_summary(slide, result))
            theme_options = self._offer_theme_once(presentation)

        logger.info(
            "All %d slides created -> %s", len(slides), slides[-1]["presentation_view_url"]
        )
        listing = "\n".join(f'Slide {s["slidenum"]}: "{s["title"]}"' for s in slides)
        text = (
            f"✅ Created {len(slides)} slides successfully!\n\n{listing}\n\n"
            f"{_continuity_reminder(presentation.presentation_id)}"
        )
        structured: dict[str, Any] = {
            "presentation_id": presentation.presentation_id,
            "deck_id": presentation.deck_id,
            "theme_id": presentation.theme_id,
            "slide_count": presentation.slide_count,
            "slides": slides,
        }
        if theme_options is not None:
            text += THEME_OFFER_TEXT
            structured["theme_options"] = theme_options
        return self._result(text, structured, "create_slide_carousel")

    async def _search_images(self, args: SearchImagesInput) -> CallToolResult:
        logger.info('Searching images for: "%s"', args.caption)
        images = await self.client.search_images(args.caption)

        if not images:
            return self._result(
                f'No images found for "{args.caption}". You can proceed without an image '
                "(the system will handle it), or try different search terms.",
                {"images": [], "total_found": 0},
            )

        if self.image_search_mode == "auto":
            best = images[0]
            logger.info("Auto-selected image %s", best.image_id)
            return self._result(
                "✅ Found and auto-selected the best matching image:\n\n"
                f'Image ID: {best.image_id}\nCaption: "{best.caption}"\n\n'
                "Use this image_id when creating your slide, or omit it entirely to let "
                "the system choose automatically.",
                {
                    "selected_image_id": best.image_id,
                    "caption": best.caption,
                    "preview_url": best.url,
                    "total_found": len(images),
                },
            )

        top = images[: self.image_search_limit]
        listing = "\n".join(
            f'{i}. {image.image_id} - "{image.caption}"' for i, image in enumerate(top, 1)
        )
        return self._result(
            f"Found {len(images)} images. Top {len(top)} candidates:\n\n{listing}\n\n"
            "Pass the chosen image_id to create_slide or create_slide_carousel.",
            {
                "images": [
                    {
                        "image_id": image.image_id,
                        "caption": image.caption,
                        "preview_url": image.url,
                        "author_name": image.author_name,
                        "author_handle": image.author_handle,
                        "orientation": image.orientation,
                        "retrieval_method": image.retrieval_method,
                    }
                    for image in top
                ],
                "total_found": len(images),
            },
        )

    async def _apply_theme(self, args: ApplyThemeInput) -> CallToolResult:
        presentation = self.registry.lookup(args.presentation_id)

        async with presentation.lock:
            if not presentation.deck_id:
                raise DeckNotReady(args.presentation_id)
            result = await self.client.apply_theme(
                presentation.deck_id, args.theme_id, presentation
            )

        theme = describe_theme(args.theme_id)
        view_url = normalize_url(result.presentation_view_url)
        return self._result(
            f'✅ Theme "{theme["name"]}" ({theme["description"]}) has been applied to your '
            f"presentation!\n\n{len(result.slides)} slide(s) have been re-rendered with the "
            f"new theme.\n\nView your presentation: {view_url}",
            {
                "success": True,
                "presentation_id": presentation.presentation_id,
                "deck_id": presentation.deck_id,
                "theme": theme,
                "slides": [s.model_dump(by_alias=True) for s in result.slides],
                "presentation_view_url": view_url,
            },
        )

    async def _show_theme_picker(self, args: ShowThemePickerInput) -> CallToolResult:
        presentation = self.registry.get(args.presentation_id)
        deck_id = presentation.deck_id if presentation else None
        options = build_theme_options(self._resolve_recommendation(args.recommended_theme_id))

        summary = "\n".join(
            f"• {category.title()} ({len(options['categories'][category])} themes): "
            f"{_CATEGORY_BLURBS[category]}"
            for category in CATEGORIES
        )
        return self._result(
            "🎨 Choose a theme for your presentation!\n\n"
            f"We have {options['total_themes']} themes across {len(CATEGORIES)} categories:\n"
            f"{summary}\n\n{options['instructions']}",
            {"presentation_id": args.presentation_id, "deck_id": deck_id, **options},
            "theme-picker",
        )
