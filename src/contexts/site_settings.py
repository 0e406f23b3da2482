"""
Site-wide branding and the maintenance gate.

Settings are read once from the singleton row; a missing row or a failed read
falls back to the built-in defaults so the app always has something to render.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote_plus

import db.crud as crud
from db.models import SiteSettings
from utils.logger import get_logger

_logger = get_logger(__name__)

GOOGLE_FONTS_URL = "https://fonts.googleapis.com/css2?{families}&display=swap"
MAINTENANCE_EXEMPT_PREFIXES = ("/admin", "/auth")


@dataclass(frozen=True)
class DocumentState:
    title: str
    favicon_url: Optional[str]
    css_variables: Dict[str, str] = field(default_factory=dict)
    font_stylesheet_url: str = ""


def font_stylesheet_url(primary_font: str, display_font: str) -> str:
    families = [
        f"family={quote_plus(primary_font)}:wght@300;400;500;600;700",
        f"family={quote_plus(display_font)}:wght@400;500;600;700",
    ]
    return GOOGLE_FONTS_URL.format(families="&".join(families))


def branding(settings: SiteSettings) -> DocumentState:
    return DocumentState(
        title=settings.site_name,
        favicon_url=settings.favicon_url,
        css_variables={
            "--font-sans": settings.primary_font,
            "--font-display": settings.display_font,
            "--primary": settings.primary_color,
            "--accent": settings.accent_color,
        },
        font_stylesheet_url=font_stylesheet_url(
            settings.primary_font, settings.display_font
        ),
    )


def is_maintenance_exempt(path: str) -> bool:
    return (path or "/").startswith(MAINTENANCE_EXEMPT_PREFIXES)


class SiteSettingsContext:
    def __init__(
        self, fetch: Optional[Callable[[], Awaitable[Optional[SiteSettings]]]] = None
    ) -> None:
        self._fetch = fetch or crud.get_site_settings
        self.settings = SiteSettings()
        self.document = branding(self.settings)
        self.loading = True
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def load(self) -> SiteSettings:
        try:
            fetched = await self._fetch()
        except Exception as e:
            _logger.warning(f"Could not load site settings, using defaults: {e}")
            fetched = None
        if fetched is None:
            _logger.debug("No site settings row, using defaults.")
        self.settings = fetched or SiteSettings()
        self.document = branding(self.settings)
        self.loading = False
        for listener in list(self._listeners):
            listener()
        return self.settings

    async def reload(self) -> SiteSettings:
        return await self.load()

    def maintenance_blocks(self, path: str) -> bool:
        """True when maintenance mode hides this route from the current visitor."""
        return self.settings.maintenance_mode and not is_maintenance_exempt(path)
