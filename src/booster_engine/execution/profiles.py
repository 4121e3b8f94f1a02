import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from booster_engine.domain.contracts import Command, Profile, SettingChange

logger = logging.getLogger(__name__)

PROFILE_GAMING = "gaming"
PROFILE_BALANCED = "balanced"
PROFILE_BATTERY = "battery"
PROFILE_CUSTOM = "custom"

CustomLineSource = Callable[[], Iterable[str]]


@dataclass(frozen=True)
class ProfileDefinition:
    id: str
    name: str
    description: str
    icon: str
    settings: Tuple[SettingChange, ...]
    cpu_max_freq: str = ""
    gpu_max_freq: str = ""
    thermal_profile: str = ""

    def build(self) -> Profile:
        return Profile(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            commands=tuple(change.to_command() for change in self.settings),
            cpu_max_freq=self.cpu_max_freq,
            gpu_max_freq=self.gpu_max_freq,
            thermal_profile=self.thermal_profile,
        )


PROFILE_DEFINITIONS: Tuple[ProfileDefinition, ...] = (
    ProfileDefinition(
        id=PROFILE_GAMING,
        name="Gaming",
        description="Short animations, power saving off, screen kept awake.",
        icon="🎮",
        thermal_profile="performance",
        settings=(
            SettingChange("global", "low_power", "0"),
            SettingChange("global", "window_animation_scale", "0.5"),
            SettingChange("global", "transition_animation_scale", "0.5"),
            SettingChange("global", "animator_duration_scale", "0.5"),
            SettingChange("system", "screen_off_timeout", "600000"),
        ),
    ),
    ProfileDefinition(
        id=PROFILE_BALANCED,
        name="Balanced",
        description="Stock animation speed and power behaviour.",
        icon="⚖️",
        thermal_profile="default",
        settings=(
            SettingChange("global", "low_power", "0"),
            SettingChange("global", "window_animation_scale", "1.0"),
            SettingChange("global", "transition_animation_scale", "1.0"),
            SettingChange("global", "animator_duration_scale", "1.0"),
            SettingChange("system", "screen_off_timeout", "60000"),
        ),
    ),
    ProfileDefinition(
        id=PROFILE_BATTERY,
        name="Battery Saver",
        description="Power saving on, animations off, background scanning off.",
        icon="🔋",
        thermal_profile="powersave",
        settings=(
            SettingChange("global", "low_power", "1"),
            SettingChange("global", "window_animation_scale", "0"),
            SettingChange("global", "transition_animation_scale", "0"),
            SettingChange("global", "animator_duration_scale", "0"),
            SettingChange("global", "wifi_scan_always_enabled", "0"),
        ),
    ),
)

_CUSTOM_NAME = "Custom"
_CUSTOM_DESCRIPTION = "User-defined command list."
_CUSTOM_ICON = "⚙️"


def default_profiles() -> List[Profile]:
    return [definition.build() for definition in PROFILE_DEFINITIONS]


def parse_command_lines(lines: Iterable[str]) -> List[Command]:
    """Turn stored lines into commands. Blank or malformed lines are skipped."""
    commands: List[Command] = []
    for lineno, line in enumerate(lines, start=1):
        try:
            command = Command.parse(line)
        except ValueError as exc:
            logger.warning("skipping custom command line %d: %s", lineno, exc)
            continue
        if command is not None:
            commands.append(command)
    return commands


def normalize_profile_id(profile_id: str) -> str:
    return (profile_id or "").strip().lower()


class ProfileRegistry:
    """Read-only catalogue of profiles, built once at startup.

    The custom profile is the one dynamic entry: its commands are read from
    the line source every time it is looked up.
    """

    def __init__(
        self,
        profiles: Optional[Sequence[Profile]] = None,
        custom_source: Optional[CustomLineSource] = None,
    ):
        built = list(profiles) if profiles is not None else default_profiles()
        index: Dict[str, Profile] = {}
        for profile in built:
            key = normalize_profile_id(profile.id)
            if not key:
                raise ValueError("Profile id must be a non-empty string.")
            if key in index or (custom_source is not None and key == PROFILE_CUSTOM):
                raise ValueError(f"Duplicate profile id '{profile.id}'.")
            index[key] = profile
        self._profiles: Dict[str, Profile] = index
        self._order: Tuple[str, ...] = tuple(index)
        self._custom_source = custom_source

    def lookup(self, profile_id: str) -> Optional[Profile]:
        key = normalize_profile_id(profile_id)
        if key == PROFILE_CUSTOM and self._custom_source is not None:
            return self._build_custom()
        return self._profiles.get(key)

    def list_all(self) -> List[Profile]:
        profiles = [self._profiles[key] for key in self._order]
        if self._custom_source is not None:
            profiles.append(self._build_custom())
        return profiles

    def ids(self) -> List[str]:
        ids = list(self._order)
        if self._custom_source is not None:
            ids.append(PROFILE_CUSTOM)
        return ids

    def _build_custom(self) -> Profile:
        try:
            lines = list(self._custom_source() or [])
        except Exception as exc:
            logger.warning("custom command source failed: %s", exc)
            lines = []
        return Profile(
            id=PROFILE_CUSTOM,
            name=_CUSTOM_NAME,
            description=_CUSTOM_DESCRIPTION,
            icon=_CUSTOM_ICON,
            commands=tuple(parse_command_lines(lines)),
        )
