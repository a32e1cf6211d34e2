"""Unit tests for theme module.

Tests for theme loading, validation, and Rich theme generation.
"""

# pyright: reportPrivateUsage=false

from pathlib import Path

import pytest
from pkgbridge.core.theme import (
    ThemeColors,
    _load_toml_colors,
    get_bundled_theme_path,
    get_rich_theme,
    load_theme,
)
from pydantic import ValidationError
from rich.theme import Theme


class TestThemeColors:
    """Tests for ThemeColors Pydantic model."""

    def test_defaults_match_bundled_theme(self) -> None:
        """The bundled theme file carries the model defaults."""
        bundled = _load_toml_colors(Path(get_bundled_theme_path()))

        assert bundled is not None
        assert ThemeColors(**bundled) == ThemeColors()

    @pytest.mark.parametrize("value", ["ffffff", "#abcd", "#gggggg", 123])
    def test_invalid_colors_rejected(self, value: object) -> None:
        """Colors must be #RGB or #RRGGBB strings."""
        with pytest.raises(ValidationError):
            ThemeColors(exported=value)  # type: ignore[arg-type]

    def test_unknown_keys_rejected(self) -> None:
        """Unknown color names are not accepted."""
        with pytest.raises(ValidationError):
            ThemeColors(confidence_high="#ffffff")  # type: ignore[call-arg]


class TestLoadTheme:
    """Tests for load_theme."""

    def test_user_overrides_merge(self, tmp_path: Path) -> None:
        """User colors override single bundled colors."""
        user = tmp_path / "theme.toml"
        user.write_text('[colors]\ncollided = "#123"\n')

        colors = load_theme(user)

        assert colors.collided == "#123"
        assert colors.exported == ThemeColors().exported

    def test_missing_user_theme(self, tmp_path: Path) -> None:
        """Without a user file the bundled theme is used."""
        assert load_theme(tmp_path / "absent.toml") == ThemeColors()

    def test_invalid_user_theme_falls_back(self, tmp_path: Path) -> None:
        """An invalid override yields the defaults."""
        user = tmp_path / "theme.toml"
        user.write_text('[colors]\nerror = "red"\n')

        assert load_theme(user) == ThemeColors()

    def test_unparseable_user_theme_ignored(self, tmp_path: Path) -> None:
        """A broken TOML file is ignored."""
        user = tmp_path / "theme.toml"
        user.write_text("[colors\n")

        assert _load_toml_colors(user) is None
        assert load_theme(user) == ThemeColors()


class TestRichTheme:
    """Tests for get_rich_theme."""

    def test_styles_for_outcomes_and_boxes(self) -> None:
        """Outcome and box styles are defined."""
        theme = get_rich_theme(ThemeColors())

        assert isinstance(theme, Theme)
        for name in ("exported", "collided", "skipped", "box_live", "box.name", "path"):
            assert name in theme.styles
