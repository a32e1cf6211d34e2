"""Unit tests for package-manager shims."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pkgbridge.core.shims import (
    generate_shims,
    manager_artifacts,
    render_manager_shim,
    shim_renderer,
)
from pkgbridge.core.state import StateStore
from pkgbridge.export.writer import Exporter
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.box import Box, Family
from pkgbridge.models.export import OutcomeStatus


class TestRenderManagerShim:
    """Tests for render_manager_shim."""

    @pytest.fixture
    def shim(self) -> str:
        """Rendered dnf shim for a Fedora box."""
        artifact = Artifact("fedora-latest", "dnf", ArtifactKind.MANAGER, "dnf")
        return render_manager_shim(artifact, Family.FEDORA, "/usr/local/bin/pkgbridge")

    def test_brackets_manager_with_both_phases(self, shim: str) -> None:
        """The shim snapshots before and finishes after the manager."""
        snapshot_at = shim.index('pm snapshot --container "$box" --family "$fam"')
        manager_at = shim.index('-- dnf "$@"')
        finish_at = shim.index("pm post-transaction")

        assert snapshot_at < manager_at < finish_at

    def test_exits_with_manager_status(self, shim: str) -> None:
        """The shim's own status is the package manager's."""
        assert shim.rstrip().endswith('exit "$status"')
        assert '--exit-code "$status"' in shim

    def test_reports_interrupts(self, shim: str) -> None:
        """An interrupted manager is reported as such."""
        assert "trap 'interrupted=1' INT" in shim
        assert "--interrupted" in shim

    def test_elevation_order(self, shim: str) -> None:
        """Rootful entry is tried first, then sudo, then doas."""
        assert shim.index("--root") < shim.index("sudo dnf") < shim.index("doas dnf")

    def test_values_are_quoted(self) -> None:
        """Box names are shell-quoted in assignments."""
        artifact = Artifact(box="my box", package="apt", kind=ArtifactKind.MANAGER, path="apt")

        shim = render_manager_shim(artifact, Family.DEBIAN)

        assert "box='my box'\n" in shim
        assert "pkgbridge=pkgbridge\n" in shim


class TestManagerArtifacts:
    """Tests for manager_artifacts."""

    def test_debian_has_two_managers(self, debian_box: Box) -> None:
        """Debian boxes get apt and apt-get shims."""
        assert [a.name for a in manager_artifacts(debian_box)] == ["apt", "apt-get"]

    def test_unknown_family_raises(self) -> None:
        """Unknown boxes have no package managers."""
        with pytest.raises(KeyError):
            manager_artifacts(Box(name="alpine"))


class TestGenerateShims:
    """Tests for generate_shims."""

    @pytest.fixture
    def exporter_for(self, store: StateStore, bin_dir: Path, apps_dir: Path):
        """Build an exporter rendering shims for a box."""

        def build(box: Box) -> Exporter:
            return Exporter(
                store,
                bin_dir=bin_dir,
                apps_dir=apps_dir,
                render_manager=shim_renderer(box, "/opt/pkgbridge"),
            )

        return build

    @patch("pkgbridge.export.resolver.which_outside", return_value=None)
    def test_writes_executable_shims(
        self, _which: MagicMock, exporter_for, debian_box: Box, bin_dir: Path
    ) -> None:
        """Shims land in the bin directory and are executable."""
        outcomes = generate_shims(debian_box, exporter_for(debian_box))

        assert [o.status for o in outcomes] == [OutcomeStatus.EXPORTED, OutcomeStatus.EXPORTED]
        apt = bin_dir / "apt"
        assert apt.stat().st_mode & 0o777 == 0o755
        assert "pkgbridge=/opt/pkgbridge\n" in apt.read_text()
        assert "fam=debian\n" in apt.read_text()

    @patch("pkgbridge.export.resolver.which_outside", return_value="/usr/bin/dnf")
    def test_host_manager_not_shadowed(
        self, _which: MagicMock, exporter_for, fedora_box: Box, bin_dir: Path
    ) -> None:
        """A package manager on the host keeps its name."""
        outcomes = generate_shims(fedora_box, exporter_for(fedora_box))

        assert outcomes[0].status == OutcomeStatus.COLLIDED
        assert (bin_dir / "dnf-fedora-latest").exists()
        assert not (bin_dir / "dnf").exists()

    @patch("pkgbridge.export.resolver.which_outside", return_value=None)
    def test_regeneration_is_idempotent(
        self, _which: MagicMock, exporter_for, fedora_box: Box
    ) -> None:
        """Generating shims twice changes nothing the second time."""
        exporter = exporter_for(fedora_box)
        generate_shims(fedora_box, exporter)

        outcomes = generate_shims(fedora_box, exporter)

        assert [o.status for o in outcomes] == [OutcomeStatus.UNCHANGED]
