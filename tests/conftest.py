"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

from pathlib import Path

import pytest
from pkgbridge.core.state import StateStore
from pkgbridge.models.box import Box, Family


@pytest.fixture(autouse=True)
def isolated_xdg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG directory into the test's temporary directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    monkeypatch.setenv("XDG_BIN_HOME", str(home / ".local" / "bin"))
    return home


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """StateStore rooted in a temporary directory."""
    return StateStore(state_dir=tmp_path / "state")


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    """Host directory for command shims."""
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def apps_dir(tmp_path: Path) -> Path:
    """Host directory for desktop launchers."""
    path = tmp_path / "applications"
    path.mkdir()
    return path


@pytest.fixture
def fedora_box() -> Box:
    """A live Fedora box."""
    return Box(name="fedora-latest", family=Family.FEDORA)


@pytest.fixture
def debian_box() -> Box:
    """A live Debian box."""
    return Box(name="debian-stable", family=Family.DEBIAN)


@pytest.fixture
def mock_box_list_output() -> str:
    """Sample `distrobox list --no-color` output."""
    return """ID           | NAME                 | STATUS             | IMAGE
5a1b2c3d4e5f | fedora-latest        | Up 2 hours         | registry.fedoraproject.org/fedora:latest
6b2c3d4e5f6a | debian-stable        | Exited (0) 1 day   | docker.io/library/debian:stable
7c3d4e5f6a7b | alpine               | Created            | docker.io/library/alpine:latest"""


@pytest.fixture
def mock_fedora_os_release() -> str:
    """Sample os-release of a Fedora box."""
    return """NAME="Fedora Linux"
VERSION="40 (Container Image)"
ID=fedora
VERSION_ID=40
PRETTY_NAME="Fedora Linux 40 (Container Image)"
"""


@pytest.fixture
def mock_ubuntu_os_release() -> str:
    """Sample os-release of an Ubuntu box."""
    return """PRETTY_NAME="Ubuntu 24.04 LTS"
NAME="Ubuntu"
VERSION_ID="24.04"
ID=ubuntu
ID_LIKE=debian
"""


@pytest.fixture
def mock_rpm_inventory() -> str:
    """Sample rpm -qa inventory output."""
    return """bash\t5.2.26-3.fc40
coreutils\t9.4-6.fc40
htop\t3.3.0-3.fc40
"""


@pytest.fixture
def mock_desktop_entry() -> str:
    """Sample desktop launcher."""
    return """[Desktop Entry]
Type=Application
Name=Htop
Comment=Show System Processes
TryExec=htop
Exec=htop
Icon=htop
Terminal=true
Categories=System;Monitor;

[Desktop Action Tree]
Name=Tree view
Exec=htop --tree
"""
