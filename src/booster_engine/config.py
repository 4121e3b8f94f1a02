import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

BROKER_PREFIX_KEY = "BROKER_COMMAND_PREFIX"
TIMEOUT_KEY = "COMMAND_TIMEOUT_SEC"
WAIT_KEY = "WAIT_FOR_COMPLETION"
BACKGROUND_APPS_KEY = "BACKGROUND_APPS"
AUTO_GRANT_KEY = "AUTO_GRANT"

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "booster-engine"
DEFAULT_BACKGROUND_APPS = [
    "com.facebook.katana",
    "com.instagram.android",
    "com.whatsapp",
]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Config:
    config_dir: Path
    env_path: Path
    broker_prefix: List[str] = field(default_factory=list)
    command_timeout_sec: Optional[float] = None
    wait_for_completion: bool = True
    background_apps: List[str] = field(default_factory=lambda: list(DEFAULT_BACKGROUND_APPS))
    auto_grant: bool = False

    @property
    def state_db_path(self) -> Path:
        return self.config_dir / "state.db"


def load_env_file(path: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    if not path.exists():
        return data
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, v = line.split("=", 1)
            data[k.strip()] = v.strip()
    except Exception as exc:
        print(f"Failed to read .env: {exc}", file=sys.stderr)
    return data


def write_env_file(path: Path, data: Dict[str, str]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"{k}={v}" for k, v in data.items()]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except Exception as exc:
        print(f"Failed to write .env: {exc}", file=sys.stderr)


def get_env_value(key: str, env_file: Dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_file.get(key)


def get_env_path(config_dir: Path) -> Path:
    return config_dir / ".env"


def parse_package_list(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    packages: List[str] = []
    for part in raw.split(","):
        part = part.strip()
        if part and part not in packages:
            packages.append(part)
    return packages


def parse_timeout(raw: Optional[str]) -> Optional[float]:
    """Empty, zero or unparsable values mean no deadline."""
    value = (raw or "").strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def parse_flag(raw: Optional[str], default: bool) -> bool:
    value = (raw or "").strip().lower()
    if not value:
        return default
    return value in _TRUTHY


def purge_env(config_dir: Path) -> None:
    env_path = get_env_path(config_dir)
    try:
        if env_path.exists():
            env_path.unlink()
    except Exception as exc:
        print(f"Failed to purge .env: {exc}", file=sys.stderr)


def load_config(config_dir: Path) -> Config:
    env_path = get_env_path(config_dir)
    env_file = load_env_file(env_path)

    prefix_raw = get_env_value(BROKER_PREFIX_KEY, env_file) or ""
    background = parse_package_list(get_env_value(BACKGROUND_APPS_KEY, env_file))

    return Config(
        config_dir=config_dir,
        env_path=env_path,
        broker_prefix=shlex.split(prefix_raw),
        command_timeout_sec=parse_timeout(get_env_value(TIMEOUT_KEY, env_file)),
        wait_for_completion=parse_flag(get_env_value(WAIT_KEY, env_file), default=True),
        background_apps=background if background is not None else list(DEFAULT_BACKGROUND_APPS),
        auto_grant=parse_flag(get_env_value(AUTO_GRANT_KEY, env_file), default=False),
    )
