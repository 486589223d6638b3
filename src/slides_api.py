"""SlidesGPT API client — slide generation, image search and theming.

The remote API holds no session of its own. Calls belonging to one
presentation are grouped by the synthetic identity headers carried on the
``PresentationContext`` (see ``registry.RemoteIdentity``).
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from pydantic import ValidationError

from src.models import ApplyThemeResult, GenerateResponse, GenerateResult, ImageResult, Slide
from src.registry import PresentationContext

logger = logging.getLogger(__name__)

API_VERSION = "2"

_GENERATE_PATH = "/chat/generate"
_SEARCH_PATH = "/chat/search"
_APPLY_THEME_PATH = "/api/chat/apply-theme"

# View URLs look like https://app.slidesgpt.com/view/{deckId}
_DECK_ID_RE = re.compile(r"/view/([a-zA-Z0-9]+)")
_DOUBLE_SLASH_RE = re.compile(r"([^:]/)/+")


class SlidesApiError(Exception):
    """Non-success response from the SlidesGPT API."""

    action = "call SlidesGPT"

    def __init__(self, status_code: int, body: str = "", detail: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(detail or f"Failed to {self.action}: {status_code}")


class RemoteGenerationFailed(SlidesApiError):
    action = "create slide"


class RemoteSearchFailed(SlidesApiError):
    action = "search images"


class RemoteThemeFailed(SlidesApiError):
    action = "apply theme"


def extract_deck_id(url: str | None) -> str | None:
    """Pull the deck id out of a presentation view URL.

    ``https://app.slidesgpt.com/view/abc123`` -> ``"abc123"``; any URL without
    a ``/view/<alphanumeric>`` segment yields None.
    """
    if not url:
        return None
    match = _DECK_ID_RE.search(url)
    return match.group(1) if match else None


def normalize_url(url: str) -> str:
    """Collapse repeated slashes in the path, leaving ``scheme://`` intact."""
    return _DOUBLE_SLASH_RE.sub(r"\1", url)


class SlidesApiClient:
    """Async wrapper around the SlidesGPT chat endpoints."""

    def __init__(
        self,
        base_url: str = "https://slidesgpt.com",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def generate_slide(self, slide: Slide, context: PresentationContext) -> GenerateResult:
        """Render one slide into the deck identified by the context's identity."""
        resp = await self._http.post(
            _GENERATE_PATH,
            headers=context.identity.headers(),
            json={"v": API_VERSION, "slidecode": slide.model_dump()},
        )
        if resp.is_error:
            logger.error("[SlidesAPI] Generate error %d: %s", resp.status_code, resp.text)
            raise RemoteGenerationFailed(resp.status_code, resp.text)

        try:
            result = GenerateResponse.model_validate(resp.json()).data
        except (ValueError, ValidationError) as exc:
            raise RemoteGenerationFailed(
                resp.status_code,
                resp.text,
                detail=f"Unexpected response from slide generation: {exc}",
            ) from exc

        context.slide_count += 1
        logger.info(
            "[SlidesAPI] Slide %d: %r -> %s",
            slide.slidenum,
            slide.title,
            normalize_url(result.presentation_view_url),
        )
        return result

    async def search_images(self, caption: str) -> list[ImageResult]:
        """Search the image library. An empty list means nothing matched."""
        resp = await self._http.get(_SEARCH_PATH, params={"caption": caption})
        if resp.is_error:
            logger.error("[SlidesAPI] Search error %d: %s", resp.status_code, resp.text)
            raise RemoteSearchFailed(resp.status_code, resp.text)

        data: Any = resp.json()
        if not isinstance(data, list):
            return []
        images = []
        for item in data:
            try:
                images.append(ImageResult.model_validate(item))
            except ValidationError:
                logger.warning("[SlidesAPI] Skipping malformed search result: %r", item)
        return images

    async def apply_theme(
        self, deck_id: str, theme_id: str, context: PresentationContext
    ) -> ApplyThemeResult:
        """Re-render every slide of ``deck_id`` with ``theme_id``."""
        resp = await self._http.post(
            _APPLY_THEME_PATH,
            headers=context.identity.headers(),
            json={"deckId": deck_id, "themeId": theme_id},
        )
        if resp.is_error:
            logger.error("[SlidesAPI] Apply theme error %d: %s", resp.status_code, resp.text)
            raise RemoteThemeFailed(resp.status_code, resp.text)

        try:
            result = ApplyThemeResult.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise RemoteThemeFailed(
                resp.status_code,
                resp.text,
                detail=f"Unexpected response from apply theme: {exc}",
            ) from exc

        context.theme_id = theme_id
        logger.info(
            "[SlidesAPI] Theme %r applied (%d slides) -> %s",
            theme_id,
            len(result.slides),
            normalize_url(result.presentation_view_url),
        )
        return result
