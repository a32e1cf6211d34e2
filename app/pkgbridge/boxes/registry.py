"""Box registry: discovery, classification and selection.

Boxes are re-derived from ``distrobox list`` on every command and never
cached across process invocations.
"""

import logging
import subprocess
from dataclasses import dataclass

from pkgbridge.boxes.families import FAMILY_COMMANDS, classify_os_release
from pkgbridge.core.errors import BoxNotFoundError, BoxUnreachableError, NoMatchingBoxError
from pkgbridge.models.box import Box, Family
from pkgbridge.models.config import UserConfig
from pkgbridge.utils.shell import command_exists, enter_box, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ListedBox:
    """Raw row of the container listing, before classification."""

    name: str
    status: str | None = None
    image: str | None = None


def parse_box_list(output: str) -> list[ListedBox]:
    """Parse ``distrobox list`` output.

    Handles the pipe-separated table (``ID | NAME | STATUS | IMAGE``) and,
    for very old releases, whitespace-separated ``NAME IMAGE`` rows.

    Args:
        output: Raw stdout of the listing command.

    Returns:
        Listed boxes in listing order, without duplicates.
    """
    boxes: list[ListedBox] = []
    seen: set[str] = set()

    for line in output.splitlines():
        text = line.strip()
        if not text:
            continue

        if "|" in text:
            cols = [col.strip() for col in text.split("|")]
            upper = [col.upper() for col in cols]
            if "NAME" in upper and "ID" in upper:
                continue
            if all(set(col) <= {"-", "+"} for col in cols):
                continue
            if len(cols) < 2 or not cols[1]:
                continue
            cols.extend([""] * (4 - len(cols)))
            row = ListedBox(name=cols[1], status=cols[2] or None, image=cols[3] or None)
        else:
            parts = text.split()
            if parts[0].upper() in ("NAME", "ID") or text.startswith("+-"):
                continue
            row = ListedBox(name=parts[0], image=parts[1] if len(parts) > 1 else None)

        if row.name not in seen:
            seen.add(row.name)
            boxes.append(row)

    return boxes


class BoxRegistry:
    """Discovers boxes and picks the one a package belongs in.

    Example:
        >>> registry = BoxRegistry(config)
        >>> for box in registry.discover():
        ...     print(f"{box.name}: {box.family.value}")
    """

    def __init__(self, config: UserConfig | None = None) -> None:
        """Initialize the registry.

        Args:
            config: User configuration (family defaults, image overrides).
        """
        self._config = config if config is not None else UserConfig()

    def is_available(self) -> bool:
        """Check if distrobox is available on the host."""
        return command_exists("distrobox")

    def list_boxes(self) -> list[ListedBox]:
        """List boxes known to the container runtime, unclassified.

        Returns:
            Listed boxes; empty if distrobox is missing or the listing fails.
        """
        try:
            result = run_command(["distrobox", "list", "--no-color"], timeout=60.0)
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Cannot list boxes: %s", e)
            return []

        if not result.success:
            logger.warning("distrobox list failed: %s", result.stderr.strip() or "unknown error")
            return []

        return parse_box_list(result.stdout)

    def classify(self, name: str) -> Family:
        """Classify a box by reading its os-release file.

        Args:
            name: Box name.

        Returns:
            Distribution family (UNKNOWN if the identity file matches nothing).

        Raises:
            BoxUnreachableError: If the box cannot be entered.
        """
        try:
            result = enter_box(name, "cat /etc/os-release 2>/dev/null || cat /usr/lib/os-release")
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
            msg = f"Cannot enter box '{name}': {e}"
            raise BoxUnreachableError(msg) from e

        if not result.success:
            msg = f"Cannot enter box '{name}': {result.stderr.strip() or 'unknown error'}"
            raise BoxUnreachableError(msg)

        family = classify_os_release(result.stdout)
        logger.debug("Classified box %s as %s", name, family.value)
        return family

    def _build(self, listed: ListedBox) -> Box:
        try:
            family = self.classify(listed.name)
            reachable = True
        except BoxUnreachableError as e:
            logger.warning("%s", e)
            family = Family.UNKNOWN
            reachable = False
        return Box(
            name=listed.name,
            family=family,
            reachable=reachable,
            image=listed.image,
            status=listed.status,
        )

    def discover(self) -> list[Box]:
        """Discover and classify all boxes.

        Returns:
            Boxes in discovery order, unreachable and unknown ones included.
        """
        return [self._build(listed) for listed in self.list_boxes()]

    def get(self, name: str, family: Family | None = None) -> Box:
        """Look up a single box by name.

        Args:
            name: Box name.
            family: Known family; skips the identity read when given.

        Returns:
            The Box.

        Raises:
            BoxNotFoundError: If no box with that name exists.
        """
        for listed in self.list_boxes():
            if listed.name != name:
                continue
            if family is not None and family != Family.UNKNOWN:
                return Box(
                    name=listed.name,
                    family=family,
                    image=listed.image,
                    status=listed.status,
                )
            return self._build(listed)

        msg = f"Box '{name}' not found"
        raise BoxNotFoundError(msg)

    def select_box(
        self,
        required_family: Family,
        override: str | None = None,
        create: bool = False,
        image: str | None = None,
    ) -> Box:
        """Pick the box a package of the given family should go into.

        Order: explicit override, configured default for the family,
        first live box of the family in discovery order, newly created box.

        Args:
            required_family: Family the package needs.
            override: Explicit box name, used verbatim.
            create: Create a box if none matches.
            image: Image to create from (overrides config and family default).

        Returns:
            The selected Box.

        Raises:
            BoxNotFoundError: If the override is absent or unreachable.
            NoMatchingBoxError: If nothing matches and creation is off.
            ValueError: If required_family is UNKNOWN.
        """
        if override:
            box = self.get(override)
            if not box.reachable:
                msg = f"Box '{override}' is not reachable"
                raise BoxNotFoundError(msg)
            return box

        if required_family == Family.UNKNOWN:
            msg = "Cannot select a box for an unknown family"
            raise ValueError(msg)

        boxes = [box for box in self.discover() if box.is_selectable]
        candidates = [box for box in boxes if box.family == required_family]

        preferred = self._config.default_box(required_family.value)
        for box in candidates:
            if box.name == preferred:
                return box
        if candidates:
            return candidates[0]

        if create or self._config.policy.auto_create:
            return self.create_box(required_family, image)

        msg = (
            f"No {required_family.value} box found; "
            "rerun with --create or pass --container"
        )
        raise NoMatchingBoxError(msg)

    def create_box(self, family: Family, image: str | None = None) -> Box:
        """Create a box for a family and return it classified.

        Args:
            family: Family to create a box for.
            image: Image override.

        Returns:
            The new Box.

        Raises:
            NoMatchingBoxError: If creation fails.
        """
        commands = FAMILY_COMMANDS[family]
        name = commands.default_box
        chosen = image or self._config.image_for(family.value) or commands.default_image

        logger.info("Creating box %s from %s", name, chosen)
        try:
            result = run_command(
                ["distrobox", "create", "--name", name, "--image", chosen, "--yes"],
                timeout=None,
            )
        except (FileNotFoundError, OSError) as e:
            msg = f"Cannot create box '{name}': {e}"
            raise NoMatchingBoxError(msg) from e

        if not result.success:
            error = result.stderr.strip() or "unknown error"
            msg = f"distrobox create failed for '{name}': {error}"
            raise NoMatchingBoxError(msg)

        return self.get(name)
