"""Family-specific command table.

Every behavior that differs between distribution families lives in one
static table instead of per-family classes: how to list the inventory,
which files a package owns, how to remove a package, which package
managers to wrap, and which box to create when none exists.
"""

import shlex
from dataclasses import dataclass

from pkgbridge.models.box import Family


@dataclass(frozen=True, slots=True)
class FamilyCommands:
    """Command templates for one distribution family.

    Attributes:
        inventory: Shell snippet printing one ``name<TAB|SPACE>version`` per line.
        owned_files: Template listing files owned by ``{package}``.
        remove: Template removing ``{package}`` non-interactively.
        managers: Package-manager commands to wrap with host shims.
        default_box: Box name used when auto-creating.
        default_image: Image used when auto-creating.
    """

    inventory: str
    owned_files: str
    remove: str
    managers: tuple[str, ...]
    default_box: str
    default_image: str

    def owned_files_command(self, package: str) -> str:
        """Render the owned-files query for a package."""
        return self.owned_files.format(package=shlex.quote(package))

    def remove_command(self, package: str) -> str:
        """Render the removal command for a package."""
        return self.remove.format(package=shlex.quote(package))


_RPM_INVENTORY = "rpm -qa --qf '%{NAME}\\t%{VERSION}-%{RELEASE}\\n'"

FAMILY_COMMANDS: dict[Family, FamilyCommands] = {
    Family.DEBIAN: FamilyCommands(
        inventory="dpkg-query -W -f='${binary:Package}\\t${Version}\\n'",
        owned_files="dpkg -L {package}",
        remove="apt-get -y remove {package}",
        managers=("apt", "apt-get"),
        default_box="debian-stable",
        default_image="docker.io/library/debian:stable",
    ),
    Family.FEDORA: FamilyCommands(
        inventory=_RPM_INVENTORY,
        owned_files="rpm -ql {package}",
        remove="dnf -y remove {package}",
        managers=("dnf",),
        default_box="fedora-latest",
        default_image="registry.fedoraproject.org/fedora:latest",
    ),
    Family.OPENSUSE: FamilyCommands(
        inventory=_RPM_INVENTORY,
        owned_files="rpm -ql {package}",
        remove="zypper --non-interactive remove {package}",
        managers=("zypper",),
        default_box="opensuse-tumbleweed",
        default_image="registry.opensuse.org/opensuse/tumbleweed:latest",
    ),
    Family.ARCH: FamilyCommands(
        inventory="pacman -Q",
        owned_files="pacman -Qlq {package}",
        remove="pacman -R --noconfirm {package}",
        managers=("pacman",),
        default_box="arch",
        default_image="docker.io/library/archlinux:latest",
    ),
}

# os-release ID / ID_LIKE tokens per family, checked in this order
_FAMILY_TOKENS: tuple[tuple[Family, frozenset[str]], ...] = (
    (Family.DEBIAN, frozenset({"debian", "ubuntu"})),
    (Family.FEDORA, frozenset({"fedora", "rhel", "centos"})),
    (Family.OPENSUSE, frozenset({"opensuse", "sles", "suse"})),
    (Family.ARCH, frozenset({"arch", "manjaro", "endeavouros"})),
)


def commands_for(family: Family) -> FamilyCommands:
    """Look up the command table entry for a family.

    Args:
        family: Distribution family.

    Returns:
        FamilyCommands for the family.

    Raises:
        KeyError: If the family is UNKNOWN.
    """
    return FAMILY_COMMANDS[family]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_os_release(text: str) -> tuple[str | None, list[str]]:
    """Extract ID and ID_LIKE from os-release content.

    Args:
        text: Content of /etc/os-release.

    Returns:
        Tuple of (lowercased ID or None, list of lowercased ID_LIKE tokens).
    """
    os_id: str | None = None
    id_like: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("ID="):
            os_id = _unquote(line[3:]).lower() or None
        elif line.startswith("ID_LIKE="):
            id_like.extend(_unquote(line[8:]).lower().split())
    return os_id, id_like


def classify_os_release(text: str) -> Family:
    """Classify os-release content into a distribution family.

    The ID is matched first so that e.g. an Ubuntu derivative that also
    lists other families in ID_LIKE still resolves by its own ID.

    Args:
        text: Content of /etc/os-release.

    Returns:
        Matching Family, or Family.UNKNOWN.
    """
    os_id, id_like = parse_os_release(text)
    for tokens in ([os_id] if os_id else [], id_like):
        for family, known in _FAMILY_TOKENS:
            if any(token in known for token in tokens):
                return family
    return Family.UNKNOWN
