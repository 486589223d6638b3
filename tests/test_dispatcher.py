"""Tests for the tool dispatcher."""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_slide
from src.dispatcher import SlideToolDispatcher
from src.middleware import ToolCallContext, ToolLoggingMiddleware, ToolMiddleware


def _text(result) -> str:
    return result.content[0].text


@pytest.mark.asyncio
async def test_end_to_end_continuity(dispatcher, registry):
    """First slide mints an id and offers themes; the second resumes silently."""
    first = await dispatcher.call(
        "create_slide", {"presentation_id": "", "slide_data": make_slide(slidenum=1, title="Intro")}
    )

    assert not first.isError
    pid = first.structuredContent["presentation_id"]
    assert pid.startswith("pres_")
    assert first.structuredContent["slide_count"] == 1
    assert first.structuredContent["deck_id"] == "deck123"
    assert first.structuredContent["theme_options"]["total_themes"] == 18
    assert pid in _text(first)
    assert "Theme Options Available" in _text(first)
    assert first.meta["openai/outputTemplate"] == "ui://widget/create_slide.html"

    second = await dispatcher.call(
        "create_slide", {"presentation_id": pid, "slide_data": make_slide(slidenum=2, title="Body")}
    )

    assert second.structuredContent["presentation_id"] == pid
    assert second.structuredContent["slide_count"] == 2
    assert "theme_options" not in second.structuredContent
    assert "Theme Options Available" not in _text(second)
    assert len(registry) == 1

    missing = await dispatcher.call(
        "apply_theme", {"presentation_id": "pres_fabricated", "theme_id": "tokyo-dark"}
    )
    assert missing.isError
    assert missing.structuredContent["error"] == "PresentationNotFound"
    assert "pres_fabricated" in _text(missing)


@pytest.mark.asyncio
async def test_slide_urls_are_normalized(dispatcher):
    result = await dispatcher.call("create_slide", {"slide_data": make_slide()})

    slide = result.structuredContent["slide"]
    assert slide["presentation_view_url"] == "https://app.slidesgpt.test/view/deck123"
    assert slide["title"] == "Intro"
    assert slide["slidenum"] == 1


@pytest.mark.asyncio
async def test_resumed_context_keeps_remote_identity(dispatcher, fake_api):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide(1)})
    pid = first.structuredContent["presentation_id"]
    await dispatcher.call(
        "create_slide_carousel",
        {"presentation_id": pid, "slides_data": [make_slide(2), make_slide(3)]},
    )

    headers = {
        (r.headers["openai-conversation-id"], r.headers["openai-ephemeral-user-id"])
        for r in fake_api.calls("/chat/generate")
    }
    assert len(headers) == 1


@pytest.mark.asyncio
async def test_deck_id_never_changes(dispatcher, fake_api, registry):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide(1)})
    pid = first.structuredContent["presentation_id"]

    fake_api.deck_id = "otherdeck"
    second = await dispatcher.call(
        "create_slide", {"presentation_id": pid, "slide_data": make_slide(2)}
    )

    assert second.structuredContent["deck_id"] == "deck123"
    assert registry.lookup(pid).deck_id == "deck123"


@pytest.mark.asyncio
async def test_carousel_generates_in_order_and_offers_theme_once(dispatcher, fake_api, registry):
    slides = [make_slide(n, title=f"Slide {n}") for n in (1, 2, 3)]

    result = await dispatcher.call("create_slide_carousel", {"presentation_id": "", "slides_data": slides})

    assert not result.isError
    sent = [json.loads(r.content)["slidecode"]["slidenum"] for r in fake_api.calls("/chat/generate")]
    assert sent == [1, 2, 3]
    assert [s["slidenum"] for s in result.structuredContent["slides"]] == [1, 2, 3]
    assert result.structuredContent["slide_count"] == 3
    assert "theme_options" in result.structuredContent
    assert 'Slide 3: "Slide 3"' in _text(result)
    assert result.meta["openai/outputTemplate"] == "ui://widget/create_slide_carousel.html"

    pid = result.structuredContent["presentation_id"]
    more = await dispatcher.call(
        "create_slide_carousel",
        {"presentation_id": pid, "slides_data": [make_slide(4), make_slide(5)]},
    )
    assert "theme_options" not in more.structuredContent
    assert registry.lookup(pid).slide_count == 5


@pytest.mark.asyncio
async def test_carousel_after_single_slide_does_not_reoffer(dispatcher):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide(1)})
    pid = first.structuredContent["presentation_id"]

    batch = await dispatcher.call(
        "create_slide_carousel", {"presentation_id": pid, "slides_data": [make_slide(2)]}
    )

    assert "theme_options" not in batch.structuredContent


@pytest.mark.asyncio
async def test_carousel_stops_at_first_failure(dispatcher, fake_api, registry):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide(1)})
    pid = first.structuredContent["presentation_id"]
    fake_api.generate_status = 503

    result = await dispatcher.call(
        "create_slide_carousel",
        {"presentation_id": pid, "slides_data": [make_slide(2), make_slide(3)]},
    )

    assert result.isError
    assert result.structuredContent["error"] == "RemoteGenerationFailed"
    assert len(fake_api.calls("/chat/generate")) == 2
    assert registry.lookup(pid).slide_count == 1


@pytest.mark.asyncio
async def test_malformed_input_never_touches_registry(dispatcher, fake_api, registry):
    result = await dispatcher.call("create_slide", {"slide_data": {"title": "No body"}})

    assert result.isError
    assert result.structuredContent["error"] == "MalformedInput"
    assert "slide_data.subtitle" in _text(result)
    assert len(registry) == 0
    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_empty_carousel_is_malformed(dispatcher, registry):
    result = await dispatcher.call("create_slide_carousel", {"slides_data": []})

    assert result.isError
    assert result.structuredContent["error"] == "MalformedInput"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher):
    result = await dispatcher.call("delete_everything", {})

    assert result.isError
    assert "Unknown tool: delete_everything" in _text(result)


@pytest.mark.asyncio
async def test_transport_error_is_reported_not_raised(registry):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    from src.slides_api import SlidesApiClient

    client = SlidesApiClient(
        http_client=httpx.AsyncClient(
            base_url="https://slidesgpt.test", transport=httpx.MockTransport(handler)
        )
    )
    dispatcher = SlideToolDispatcher(registry, client)

    result = await dispatcher.call("create_slide", {"slide_data": make_slide()})

    assert result.isError
    assert result.structuredContent["error"] == "ConnectError"
    assert "connection refused" in _text(result)


# ── search_images ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_search_no_results_is_not_an_error(dispatcher, fake_api):
    fake_api.search_results = []

    result = await dispatcher.call("search_images", {"caption": "unicorn spreadsheet"})

    assert not result.isError
    assert "No images found" in _text(result)
    assert result.structuredContent["total_found"] == 0


@pytest.mark.asyncio
async def test_search_auto_selects_best(dispatcher, fake_api):
    fake_api.search_results = [
        {"image_id": "best", "caption": "skyline", "url": "https://img/best.jpg"},
        {"image_id": "second", "caption": "street"},
    ]

    result = await dispatcher.call("search_images", {"caption": "city"})

    assert result.structuredContent == {
        "selected_image_id": "best",
        "caption": "skyline",
        "preview_url": "https://img/best.jpg",
        "total_found": 2,
    }


@pytest.mark.asyncio
async def test_search_keeps_result_with_null_caption(dispatcher, fake_api):
    fake_api.search_results = [{"image_id": 5, "caption": None}]

    result = await dispatcher.call("search_images", {"caption": "x"})

    assert not result.isError
    assert "No images found" not in _text(result)
    assert result.structuredContent["selected_image_id"] == "5"
    assert result.structuredContent["total_found"] == 1


@pytest.mark.asyncio
async def test_search_pick_mode_returns_candidates(registry, api_client, fake_api):
    fake_api.search_results = [
        {"image_id": f"img{i}", "caption": f"caption {i}", "author_name": "Ada"} for i in range(8)
    ]
    dispatcher = SlideToolDispatcher(
        registry, api_client, image_search_mode="pick", image_search_limit=3
    )

    result = await dispatcher.call("search_images", {"caption": "city"})

    images = result.structuredContent["images"]
    assert [i["image_id"] for i in images] == ["img0", "img1", "img2"]
    assert images[0]["author_name"] == "Ada"
    assert result.structuredContent["total_found"] == 8
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_search_failure_is_flagged(dispatcher, fake_api):
    fake_api.search_status = 500

    result = await dispatcher.call("search_images", {"caption": "city"})

    assert result.isError
    assert result.structuredContent["error"] == "RemoteSearchFailed"


def test_invalid_search_mode_rejected(registry, api_client):
    with pytest.raises(ValueError):
        SlideToolDispatcher(registry, api_client, image_search_mode="random")


# ── apply_theme ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_apply_theme_requires_deck(dispatcher, registry, fake_api):
    ctx = registry.resolve_or_create()

    result = await dispatcher.call(
        "apply_theme", {"presentation_id": ctx.presentation_id, "theme_id": "tokyo-dark"}
    )

    assert result.isError
    assert result.structuredContent["error"] == "DeckNotReady"
    assert "create at least one slide" in _text(result)
    assert fake_api.calls("/api/chat/apply-theme") == []


@pytest.mark.asyncio
async def test_apply_theme_sets_requested_theme(dispatcher, registry, fake_api):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide()})
    pid = first.structuredContent["presentation_id"]

    result = await dispatcher.call("apply_theme", {"presentation_id": pid, "theme_id": "zurich-dark"})

    assert not result.isError
    assert registry.lookup(pid).theme_id == "zurich-dark"
    assert result.structuredContent["theme"] == {
        "id": "zurich-dark",
        "name": "Zürich Dark",
        "category": "urban",
        "description": "Modern Swiss Utility",
    }
    assert result.structuredContent["slides"][0]["slideNum"] == 1
    assert "Zürich Dark" in _text(result)
    (request,) = fake_api.calls("/api/chat/apply-theme")
    assert json.loads(request.content) == {"deckId": "deck123", "themeId": "zurich-dark"}


@pytest.mark.asyncio
async def test_apply_theme_rejects_unknown_theme(dispatcher):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide()})
    pid = first.structuredContent["presentation_id"]

    result = await dispatcher.call("apply_theme", {"presentation_id": pid, "theme_id": "vaporwave"})

    assert result.isError
    assert result.structuredContent["error"] == "MalformedInput"


@pytest.mark.asyncio
async def test_no_theme_offer_after_theme_applied(dispatcher, registry):
    ctx = registry.resolve_or_create("pres_manual")
    ctx.deck_id = "deck123"
    await dispatcher.call("apply_theme", {"presentation_id": "pres_manual", "theme_id": "la-light"})

    result = await dispatcher.call(
        "create_slide", {"presentation_id": "pres_manual", "slide_data": make_slide()}
    )

    assert "theme_options" not in result.structuredContent
    assert result.structuredContent["theme_id"] == "la-light"


# ── show_theme_picker ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_theme_picker_tolerates_unknown_presentation(dispatcher, registry):
    result = await dispatcher.call("show_theme_picker", {"presentation_id": "pres_unknown"})

    assert not result.isError
    assert result.structuredContent["deck_id"] is None
    assert result.structuredContent["total_themes"] == 18
    assert len(result.structuredContent["categories"]["urban"]) == 16
    assert len(result.structuredContent["categories"]["gradient"]) == 2
    assert result.meta["openai/outputTemplate"] == "ui://widget/theme-picker.html"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_theme_picker_is_read_only(dispatcher, registry):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide()})
    pid = first.structuredContent["presentation_id"]
    ctx = registry.lookup(pid)
    before = (ctx.slide_count, ctx.theme_id, ctx.theme_offered, ctx.last_used)

    result = await dispatcher.call(
        "show_theme_picker", {"presentation_id": pid, "recommended_theme_id": "tokyo-dark"}
    )

    assert result.structuredContent["deck_id"] == "deck123"
    assert result.structuredContent["recommended_theme_id"] == "tokyo-dark"
    assert (ctx.slide_count, ctx.theme_id, ctx.theme_offered, ctx.last_used) == before


@pytest.mark.asyncio
async def test_theme_picker_recommendation_by_content_type(dispatcher):
    by_type = await dispatcher.call(
        "show_theme_picker", {"presentation_id": "x", "recommended_theme_id": "Finance"}
    )
    unknown = await dispatcher.call(
        "show_theme_picker", {"presentation_id": "x", "recommended_theme_id": "neon-goth"}
    )

    assert by_type.structuredContent["recommended_theme_id"] == "zurich-light"
    assert unknown.structuredContent["recommended_theme_id"] is None


# ── concurrency & middleware ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_calls_on_one_presentation_serialize(dispatcher, registry):
    first = await dispatcher.call("create_slide", {"slide_data": make_slide(1)})
    pid = first.structuredContent["presentation_id"]

    results = await asyncio.gather(*(
        dispatcher.call("create_slide", {"presentation_id": pid, "slide_data": make_slide(n)})
        for n in range(2, 7)
    ))

    assert sorted(r.structuredContent["slide_count"] for r in results) == [2, 3, 4, 5, 6]
    assert registry.lookup(pid).slide_count == 6


@pytest.mark.asyncio
async def test_middleware_wraps_calls_in_order(registry, api_client):
    seen = []

    class Recorder(ToolMiddleware):
        def __init__(self, label):
            self.label = label

        async def process(self, context: ToolCallContext, call_next):
            seen.append(f"{self.label}:before:{context.name}")
            await call_next()
            seen.append(f"{self.label}:after:{context.result.isError}")

    dispatcher = SlideToolDispatcher(
        registry, api_client, middleware=[Recorder("outer"), Recorder("inner"), ToolLoggingMiddleware()]
    )

    await dispatcher.call("show_theme_picker", {"presentation_id": "x"})

    assert seen == [
        "outer:before:show_theme_picker",
        "inner:before:show_theme_picker",
        "inner:after:False",
        "outer:after:False",
    ]


@pytest.mark.asyncio
async def test_middleware_can_short_circuit(registry):
    client = AsyncMock()

    class Blocker(ToolMiddleware):
        async def process(self, context, call_next):
            return None

    dispatcher = SlideToolDispatcher(registry, client, middleware=[Blocker()])

    result = await dispatcher.call("create_slide", {"slide_data": make_slide()})

    assert result.isError
    assert "produced no result" in _text(result)
    client.generate_slide.assert_not_called()


@pytest.mark.asyncio
async def test_failing_middleware_is_reported_not_raised(registry):
    client = AsyncMock()

    class Broken(ToolMiddleware):
        async def process(self, context, call_next):
            raise RuntimeError("audit sink offline")

    dispatcher = SlideToolDispatcher(registry, client, middleware=[Broken()])

    result = await dispatcher.call("create_slide", {"slide_data": make_slide()})

    assert result.isError
    assert result.structuredContent["error"] == "RuntimeError"
    assert "audit sink offline" in _text(result)
    client.generate_slide.assert_not_called()
