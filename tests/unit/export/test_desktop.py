"""Unit tests for desktop launcher rewriting."""

import pytest
from pkgbridge.core.errors import DesktopEntryError
from pkgbridge.export.desktop import (
    quote_exec_arg,
    rewrite_desktop_entry,
    validate_desktop_entry,
    wrap_exec,
)


class TestValidate:
    """Tests for validate_desktop_entry."""

    def test_valid_entry(self, mock_desktop_entry: str) -> None:
        """A launcher with a main group and Exec passes."""
        validate_desktop_entry(mock_desktop_entry)

    def test_missing_main_group(self) -> None:
        """A launcher without [Desktop Entry] is rejected."""
        with pytest.raises(DesktopEntryError, match="Missing"):
            validate_desktop_entry("[Other]\nExec=foo\n")

    def test_exec_only_in_action_group(self) -> None:
        """Exec must be set in the main group."""
        with pytest.raises(DesktopEntryError, match="No Exec"):
            validate_desktop_entry("[Desktop Entry]\nName=X\n[Desktop Action A]\nExec=foo\n")

    def test_empty_exec(self) -> None:
        """An empty Exec does not count."""
        with pytest.raises(DesktopEntryError):
            validate_desktop_entry("[Desktop Entry]\nExec=\n")


class TestWrapExec:
    """Tests for wrap_exec."""

    def test_wraps_command(self) -> None:
        """Commands are run through distrobox enter."""
        assert wrap_exec("gimp %U", "arch") == "distrobox enter -n arch -- gimp %U"

    def test_box_name_with_space_is_quoted(self) -> None:
        """A box name with reserved characters becomes one quoted argument."""
        assert wrap_exec("gimp", "my box") == 'distrobox enter -n "my box" -- gimp'

    def test_already_wrapped(self) -> None:
        """Wrapped commands are left alone."""
        command = "distrobox enter -n arch -- gimp"
        assert wrap_exec(command, "other") == command


class TestQuoteExecArg:
    """Tests for quote_exec_arg."""

    @pytest.mark.parametrize("arg", ["fedora-latest", "arch_2", "box.local"])
    def test_plain_names_unquoted(self, arg: str) -> None:
        """Names without reserved characters pass through."""
        assert quote_exec_arg(arg) == arg

    def test_dollar_and_quote_escaped(self) -> None:
        """Shell-special characters are backslash-escaped inside quotes."""
        assert quote_exec_arg('a$b"c') == '"a\\\\$b\\\\"c"'

    def test_percent_doubled(self) -> None:
        """A percent sign is not read as a field code."""
        assert quote_exec_arg("50%") == "50%%"


class TestRewrite:
    """Tests for rewrite_desktop_entry."""

    def test_full_rewrite(self, mock_desktop_entry: str) -> None:
        """Exec lines are wrapped, TryExec dropped and the box recorded."""
        result = rewrite_desktop_entry(mock_desktop_entry, "fedora-latest")

        assert result == (
            "[Desktop Entry]\n"
            "Type=Application\n"
            "Name=Htop\n"
            "Comment=Show System Processes\n"
            "Exec=distrobox enter -n fedora-latest -- htop\n"
            "Icon=htop\n"
            "Terminal=true\n"
            "Categories=System;Monitor;\n"
            "X-Pkgbridge-Box=fedora-latest\n"
            "\n"
            "[Desktop Action Tree]\n"
            "Name=Tree view\n"
            "Exec=distrobox enter -n fedora-latest -- htop --tree\n"
        )

    def test_fallback_suffixes_main_name_only(self, mock_desktop_entry: str) -> None:
        """Fallback launchers name the box in the main group's Name."""
        result = rewrite_desktop_entry(mock_desktop_entry, "fedora-latest", fallback=True)

        assert "Name=Htop (fedora-latest)\n" in result
        assert "Name=Tree view\n" in result

    def test_rewrite_is_stable(self, mock_desktop_entry: str) -> None:
        """Rewriting a rewritten launcher changes nothing."""
        once = rewrite_desktop_entry(mock_desktop_entry, "b", fallback=True)

        assert rewrite_desktop_entry(once, "b", fallback=True) == once

    def test_comments_preserved(self) -> None:
        """Comment lines are kept verbatim."""
        text = "[Desktop Entry]\n# generated\nExec=foo\n"

        result = rewrite_desktop_entry(text, "b")

        assert result == (
            "[Desktop Entry]\n# generated\nExec=distrobox enter -n b -- foo\nX-Pkgbridge-Box=b\n"
        )

    def test_malformed_rejected(self) -> None:
        """Malformed launchers are not rewritten."""
        with pytest.raises(DesktopEntryError):
            rewrite_desktop_entry("Name=Nothing\n", "b")
