"""Theme management for the pkgbridge CLI.

Colors come from the bundled data/theme.toml, optionally overridden by
~/.config/pkgbridge/theme.toml. Every color becomes a Rich style of the
same name; a few composite styles (bold headers, box and package names)
are derived from them.
"""

import logging
import re
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rich.theme import Theme

from pkgbridge.core.errors import StateCorruptError
from pkgbridge.core.paths import get_theme_path
from pkgbridge.core.state import read_toml

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})")


class ThemeColors(BaseModel):
    """Hex colors (#RGB or #RRGGBB) used by the CLI."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str = "#ffffff"
    muted: str = "#b2bec3"
    header: str = "#69B9A1"
    border: str = "#29526d"

    success: str = "#03b971"
    warning: str = "#f5b332"
    error: str = "#f53263"
    info: str = "#0ec1c8"

    # Inventory diff
    added: str = "#c1ff62"
    removed: str = "#f53263"
    changed: str = "#0e8ac8"

    # Export outcomes
    exported: str = "#03b971"
    collided: str = "#faf870"
    skipped: str = "#d44ebc"

    # Box liveness
    box_live: str = "#69B9A1"
    box_down: str = "#226666"

    @field_validator("*", mode="before")
    @classmethod
    def validate_hex_color(cls, v: object) -> str:
        """Accept only hex color strings."""
        if not isinstance(v, str) or not _HEX_COLOR.fullmatch(v.strip()):
            msg = f"expected a #RGB or #RRGGBB color, got {v!r}"
            raise ValueError(msg)
        return v.strip()


def get_bundled_theme_path() -> Path:
    """Get the bundled default theme path."""
    return resources.files("pkgbridge.data").joinpath("theme.toml")  # type: ignore[return-value]


def _load_toml_colors(path: Path) -> dict[str, object] | None:
    """Read the [colors] table of a theme file.

    Returns:
        Color name to value, or None if the file is missing or unusable.
    """
    try:
        data = read_toml(path)
    except StateCorruptError as e:
        logger.warning("Ignoring theme file: %s", e)
        return None
    if data is None:
        return None

    colors = data.get("colors", {})
    if not isinstance(colors, dict):
        logger.warning("Ignoring theme file %s: [colors] is not a table", path)
        return None
    return colors


def load_theme(user_path: Path | None = None) -> ThemeColors:
    """Load theme colors, user overrides merged over the bundled ones.

    An invalid merged theme falls back to the built-in defaults.
    """
    colors = _load_toml_colors(Path(get_bundled_theme_path()))
    if colors is None:
        logger.error("Bundled theme is missing; the installation may be broken")
        colors = {}

    user_path = user_path or get_theme_path()
    overrides = _load_toml_colors(user_path)
    if overrides:
        logger.debug("Loaded theme overrides from %s", user_path)
        colors = {**colors, **overrides}

    try:
        return ThemeColors.model_validate(colors)
    except ValidationError as e:
        logger.warning("Invalid theme in %s, using defaults: %s", user_path, e)
        return ThemeColors()


def get_rich_theme(colors: ThemeColors | None = None) -> Theme:
    """Build the Rich theme for a set of colors (loaded when omitted)."""
    colors = colors or load_theme()

    styles: dict[str, str] = dict(colors.model_dump())
    styles.update(
        {
            "error": f"bold {colors.error}",
            "box_live": f"bold {colors.box_live}",
            "bold_header": f"bold {colors.header}",
            "dim": colors.muted,
            "box.name": f"bold {colors.text}",
            "package.name": f"bold {colors.text}",
            "package.version": colors.muted,
            "path": colors.info,
        }
    )
    return Theme(styles)


_cached_theme: Theme | None = None


def get_theme() -> Theme:
    """Get the Rich theme, loading and caching it on first use."""
    global _cached_theme
    if _cached_theme is None:
        _cached_theme = get_rich_theme()
    return _cached_theme
