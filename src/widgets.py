"""Widgets — prebuilt HTML templates the assistant renders tool results with.

The HTML is produced by the front-end build and read once at startup. A
missing asset aborts startup.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

MIME_TYPE = "text/html+skybridge"

SLIDESGPT_ORIGIN = "https://slidesgpt.com"


class WidgetAssetsError(RuntimeError):
    """Raised when the widget HTML cannot be found on disk."""


@dataclass(frozen=True)
class Widget:
    id: str
    title: str
    template_uri: str
    invoking: str
    invoked: str
    component: str
    html: str = ""

    def meta(self) -> dict[str, Any]:
        """``_meta`` block binding a tool or resource to this widget."""
        return {
            "openai/outputTemplate": self.template_uri,
            "openai/toolInvocation/invoking": self.invoking,
            "openai/toolInvocation/invoked": self.invoked,
            "openai/widgetAccessible": True,
            "openai/resultCanProduceWidget": True,
            "openai/widgetCSP": {
                "connect_domains": [SLIDESGPT_ORIGIN],
                "resource_domains": [SLIDESGPT_ORIGIN],
            },
            "openai/widgetDomain": "slidesgpt",
        }


WIDGET_SPECS = (
    Widget(
        id="create_slide",
        title="Create Slide",
        template_uri="ui://widget/create_slide.html",
        invoking="Creating slide...",
        invoked="Slide created",
        component="slides-viewer",
    ),
    Widget(
        id="create_slide_carousel",
        title="Create Slides Carousel",
        template_uri="ui://widget/create_slide_carousel.html",
        invoking="Creating slides...",
        invoked="Slides created",
        component="slides-carousel",
    ),
    Widget(
        id="theme-picker",
        title="Choose Theme",
        template_uri="ui://widget/theme-picker.html",
        invoking="Loading themes...",
        invoked="Themes loaded",
        component="theme-picker",
    ),
)


def read_widget_html(assets_dir: Path, component: str) -> str:
    """Read ``<component>.html``, falling back to the newest hashed build.

    Hashed builds are named ``<component>-<hash>.html``; the last one in sort
    order wins.
    """
    if not assets_dir.is_dir():
        raise WidgetAssetsError(
            f"Widget assets not found. Expected directory {assets_dir}. "
            "Build the widgets before starting the server."
        )

    direct = assets_dir / f"{component}.html"
    if direct.is_file():
        return direct.read_text(encoding="utf-8")

    candidates = sorted(assets_dir.glob(f"{component}-*.html"))
    if candidates:
        return candidates[-1].read_text(encoding="utf-8")

    raise WidgetAssetsError(
        f'Widget HTML for "{component}" not found in {assets_dir}. '
        "Build the widgets to generate the assets."
    )


def load_widgets(assets_dir: Path) -> dict[str, Widget]:
    """Load every widget's HTML, keyed by widget id."""
    widgets = {}
    for spec in WIDGET_SPECS:
        html = read_widget_html(assets_dir, spec.component)
        widgets[spec.id] = replace(spec, html=html)
    return widgets
