"""User configuration models.

This module defines the Pydantic models representing config.toml: the
family -> default box bindings, image overrides and policy toggles. The
configuration is loaded once at startup and never mutated in-process.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Type alias for family keys that can be bound to a box
FamilyKey = Literal["debian", "fedora", "opensuse", "arch"]

# Type alias for lock contention behavior
LockMode = Literal["wait", "fail"]

DEFAULT_BINARY_DIRS = ("/usr/bin", "/bin", "/usr/local/bin", "/usr/games")
DEFAULT_DESKTOP_DIRS = ("/usr/share/applications",)


class PolicyConfig(BaseModel):
    """Policy toggles for transactions and exports.

    Attributes:
        lock_mode: Block ("wait") or fail fast ("fail") when another
            transaction holds the box.
        lock_timeout: Maximum seconds to wait in "wait" mode.
        auto_create: Create a box when none of the required family exists.
        export_binaries: Export command shims for new binaries.
        export_desktop: Export desktop launchers.
        binary_dirs: In-box directories scanned for executables.
        desktop_dirs: In-box directories scanned for launchers.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    lock_mode: Annotated[LockMode, Field(description="Lock contention behavior")] = "wait"
    lock_timeout: Annotated[
        float,
        Field(ge=0, description="Seconds to wait for a busy box"),
    ] = 300.0
    auto_create: Annotated[bool, Field(description="Create missing boxes")] = False
    export_binaries: Annotated[bool, Field(description="Export command shims")] = True
    export_desktop: Annotated[bool, Field(description="Export desktop launchers")] = True
    binary_dirs: Annotated[
        tuple[str, ...],
        Field(description="In-box executable directories"),
    ] = DEFAULT_BINARY_DIRS
    desktop_dirs: Annotated[
        tuple[str, ...],
        Field(description="In-box launcher directories"),
    ] = DEFAULT_DESKTOP_DIRS

    @field_validator("binary_dirs", "desktop_dirs")
    @classmethod
    def validate_absolute(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        """Validate that scanned directories are absolute paths."""
        for entry in value:
            if not entry.startswith("/"):
                msg = f"Directory must be absolute: {entry}"
                raise ValueError(msg)
        return tuple(entry.rstrip("/") or "/" for entry in value)


class UserConfig(BaseModel):
    """Complete user configuration.

    Attributes:
        pm_defaults: Family -> default box name.
        images: Family -> image used when auto-creating a box.
        policy: Transaction and export policy.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    pm_defaults: Annotated[
        dict[FamilyKey, str],
        Field(default_factory=dict, description="Default box per family"),
    ]
    images: Annotated[
        dict[FamilyKey, str],
        Field(default_factory=dict, description="Image overrides per family"),
    ]
    policy: Annotated[
        PolicyConfig,
        Field(default_factory=PolicyConfig, description="Policy toggles"),
    ]

    def default_box(self, family: str) -> str | None:
        """Get the box bound to a family, if any."""
        return self.pm_defaults.get(family)  # type: ignore[call-overload]

    def image_for(self, family: str) -> str | None:
        """Get the image override of a family, if any."""
        return self.images.get(family)  # type: ignore[call-overload]

    def with_default(self, family: FamilyKey, box: str) -> "UserConfig":
        """Return a copy with a family bound to a box."""
        return self.model_copy(update={"pm_defaults": {**self.pm_defaults, family: box}})
