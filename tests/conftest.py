"""Shared fixtures — an in-process fake of the SlidesGPT API."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from src.dispatcher import SlideToolDispatcher
from src.registry import PresentationRegistry
from src.slides_api import SlidesApiClient

BASE_URL = "https://slidesgpt.test"


class FakeSlidesGPT:
    """httpx.MockTransport handler emulating /chat/generate, /chat/search and apply-theme."""

    def __init__(self, deck_id: str = "deck123"):
        self.deck_id = deck_id
        self.requests: list[httpx.Request] = []
        self.generate_status = 200
        self.search_status = 200
        self.theme_status = 200
        self.search_results: Any = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/chat/generate":
            if self.generate_status != 200:
                return httpx.Response(self.generate_status, text="generation exploded")
            slide = json.loads(request.content)["slidecode"]
            return httpx.Response(200, json={
                "data": {
                    "image_url": f"https://cdn.slidesgpt.test/{self.deck_id}/{slide['slidenum']}.png",
                    # The real service sometimes doubles the slash before /view.
                    "presentation_view_url": f"https://app.slidesgpt.test//view/{self.deck_id}",
                },
            })

        if path == "/chat/search":
            if self.search_status != 200:
                return httpx.Response(self.search_status, text="search down")
            return httpx.Response(200, json=self.search_results)

        if path == "/api/chat/apply-theme":
            if self.theme_status != 200:
                return httpx.Response(self.theme_status, text="bad theme")
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "theme": {"id": body["themeId"], "name": body["themeId"]},
                "slides": [
                    {"slideNum": 1, "image_url": f"https://cdn.slidesgpt.test/{body['deckId']}/1-themed.png"},
                ],
                "presentation_view_url": f"https://app.slidesgpt.test/view/{body['deckId']}",
                "message": "ok",
            })

        return httpx.Response(404, text="not found")

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_slide(slidenum: int = 1, title: str = "Intro", **overrides) -> dict[str, Any]:
    slide = {
        "title": title,
        "subtitle": f"{title} subtitle",
        "slidenum": slidenum,
        "body": [
            {"point": "Fast", "description": "Slides render in seconds.", "icon": "rocket"},
            {"point": "Simple", "description": "One call per slide.", "icon": "lightbulb"},
        ],
        "talktrack": "Walk through the highlights.",
        "sources": [{"title": "SlidesGPT", "link": "https://slidesgpt.com"}],
    }
    slide.update(overrides)
    return slide


@pytest.fixture
def fake_api() -> FakeSlidesGPT:
    return FakeSlidesGPT()


@pytest.fixture
def api_client(fake_api) -> SlidesApiClient:
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(fake_api))
    return SlidesApiClient(http_client=http)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> PresentationRegistry:
    return PresentationRegistry(clock=clock)


@pytest.fixture
def dispatcher(registry, api_client) -> SlideToolDispatcher:
    return SlideToolDispatcher(registry, api_client)
