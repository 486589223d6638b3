"""Pydantic models for slide payloads, tool inputs and SlidesGPT responses."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.themes import ThemeId


# ── Slide payload (forwarded to /chat/generate as "slidecode") ────────


class BulletPoint(BaseModel):
    point: Annotated[str, Field(description="Main point (2-5 words)")]
    description: Annotated[str, Field(description="Explanation (1-2 sentences)")]
    icon: Annotated[
        str,
        Field(description="FontAwesome 5.15 icon name (e.g., 'lightbulb', 'chart-line', 'rocket')"),
    ]


class Source(BaseModel):
    title: str
    link: str


class Slide(BaseModel):
    title: Annotated[str, Field(description="Title of the slide")]
    subtitle: Annotated[str, Field(description="Subtitle of the slide")]
    slidenum: Annotated[int, Field(description="Slide number")]
    image_id: Annotated[
        str,
        Field(
            description=(
                "OPTIONAL - Image ID. If omitted or empty, system auto-selects the best "
                "image based on slide content. No need to call search_images first."
            ),
        ),
    ] = ""
    body: Annotated[list[BulletPoint], Field(description="Array of 2-4 bullet points")]
    talktrack: Annotated[str, Field(description="Speaker notes for this slide")]
    sources: Annotated[list[Source], Field(description="Reference sources")]
    force_edit: Annotated[
        bool, Field(description="Overwrite if slide exists at this slidenum")
    ] = False


# ── Tool inputs ───────────────────────────────────────────────────────

PresentationIdField = Annotated[
    str,
    Field(
        description=(
            "Presentation ID for continuity. Use '' for the first slide, then ALWAYS "
            "pass the ID returned from previous calls."
        ),
    ),
]


class _ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CreateSlideInput(_ToolInput):
    presentation_id: PresentationIdField = ""
    slide_data: Slide


class CreateSlideCarouselInput(_ToolInput):
    presentation_id: PresentationIdField = ""
    slides_data: Annotated[list[Slide], Field(min_length=1)]


class SearchImagesInput(_ToolInput):
    caption: str


class ApplyThemeInput(_ToolInput):
    presentation_id: str
    theme_id: ThemeId


class ShowThemePickerInput(_ToolInput):
    presentation_id: str
    recommended_theme_id: str | None = None


# ── SlidesGPT responses ───────────────────────────────────────────────


class GenerateResult(BaseModel):
    image_url: str
    presentation_view_url: str


class GenerateResponse(BaseModel):
    data: GenerateResult


class ImageResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image_id: str
    caption: str = ""
    url: str = ""
    author_name: str | None = None
    author_handle: str | None = None
    orientation: str | None = None
    retrieval_method: str | None = None

    @field_validator("image_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value) if value is not None else value

    @field_validator("caption", "url", mode="before")
    @classmethod
    def _null_to_empty(cls, value):
        return "" if value is None else value


class ThemedSlide(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slide_num: int = Field(alias="slideNum")
    image_url: str


class AppliedTheme(BaseModel):
    id: str
    name: str = ""


class ApplyThemeResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = True
    theme: AppliedTheme | None = None
    slides: list[ThemedSlide] = Field(default_factory=list)
    presentation_view_url: str = ""
    message: str = ""

    @field_validator("slides", mode="before")
    @classmethod
    def _null_slides(cls, value):
        return value or []
