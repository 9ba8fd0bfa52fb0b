from __future__ import annotations

import fcntl
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

import yaml

from chatwarden.datatypes.identity import DEFAULT_COUNTRY_CODE, Identity, digits_only, resolve_identity
from chatwarden.moderation.text_matcher import parse_terms
from chatwarden.util.logger import get_logger

logger = get_logger("app_configuration")


DEFAULT_CONFIG_PATH = "./config/app_config.yml"

DEFAULT_BANNED_WORDS = "fuck,shit,hell,damn,bitch,ass,bastard,femboy,dih,dick,pussy"
DEFAULT_WARNINGS_FILE = "./data/warnings.json"

TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off", ""}


class ConfigurationError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


# Environment variable -> (section, key)
ENV_OVERRIDES: Dict[str, tuple[str, str]] = {
    "BANNED_WORDS": ("moderation", "banned_words"),
    "ALLOWED_NUMBERS": ("moderation", "allowed_numbers"),
    "TARGET_GROUPS": ("moderation", "target_groups"),
    "WARNINGS_THRESHOLD": ("moderation", "warnings_threshold"),
    "MODERATION_ACTIVE": ("moderation", "moderation_active"),
    "RESET_WARNINGS_ON_START": ("moderation", "reset_warnings_on_start"),
    "DEFAULT_COUNTRY_CODE": ("moderation", "default_country_code"),
    "ANNOUNCE_ON_READY": ("moderation", "announce_on_ready"),
    "WARNINGS_FILE": ("storage", "warnings_file"),
    "PROCESSED_TTL_SECONDS": ("dedup", "ttl_seconds"),
    "PROCESSED_MAX_ENTRIES": ("dedup", "max_entries"),
    "PROCESSED_TRIM_FLOOR": ("dedup", "trim_floor"),
    "PROCESSED_HARD_CAP": ("dedup", "hard_cap"),
    "STATE_SAVE_INTERVAL_SECONDS": ("maintenance", "interval_seconds"),
    "POLL_INTERVAL_SECONDS": ("polling", "interval_seconds"),
    "POLL_LIMIT": ("polling", "limit"),
}


def split_list(value: Any) -> list[str]:
    """Accept a comma-separated string or a YAML list and return stripped items."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, Sequence):
        items = [str(item) for item in value]
    else:
        raise ConfigurationError(f"Expected a list or comma-separated string, got {value!r}")
    return [item.strip() for item in items if item.strip()]


def parse_bool(value: Any, *, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def parse_int(value: Any, *, name: str, minimum: int = 0) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {number}")
    return number


def parse_float(value: Any, *, name: str, minimum: float = 0.0) -> float:
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if number < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {number}")
    return number


@dataclass(frozen=True, slots=True)
class ModerationSettings:
    """Immutable moderation policy and runtime tuning, built once at startup."""

    banned_terms: tuple[str, ...]
    allowed_numbers: tuple[Identity, ...]
    target_groups: tuple[str, ...]
    warnings_threshold: int = 3
    moderation_active: bool = True
    reset_warnings_on_start: bool = False
    default_country_code: str = DEFAULT_COUNTRY_CODE
    announce_on_ready: bool = True
    warnings_file: Path = Path(DEFAULT_WARNINGS_FILE)
    dedup_ttl_seconds: float = 24 * 3600
    dedup_max_entries: int = 25_000
    dedup_trim_floor: int = 15_000
    dedup_hard_cap: int = 30_000
    maintenance_interval_seconds: float = 15.0
    poll_interval_seconds: float = 5.0
    poll_limit: int = 500


def resolve_config_path() -> Path:
    """Return the configuration file path, honouring ``CHATWARDEN_CONFIG``.

    Read at call time so a value supplied through ``.env`` is seen once
    ``load_dotenv`` has run.
    """
    return Path(os.getenv("CHATWARDEN_CONFIG", DEFAULT_CONFIG_PATH)).resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The YAML file is optional. Environment variables listed in
    :data:`ENV_OVERRIDES` take precedence over the file, which lets a
    deployment configure everything through ``.env``.
    """

    def __init__(self, config_path: Path, environ: Mapping[str, str] | None = None) -> None:
        self.config_path = config_path
        self._environ = environ
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.info("[APP CONFIGURATION] Config file %s not found; using environment and defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    def _value(self, section: str, key: str, default: Any = None) -> Any:
        environ = os.environ if self._environ is None else self._environ
        for env_name, target in ENV_OVERRIDES.items():
            if target == (section, key) and env_name in environ:
                return environ[env_name]
        return self._section(section).get(key, default)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def moderation_settings(self) -> ModerationSettings:
        """Build validated :class:`ModerationSettings` from file and environment.

        Raises
        ------
        ConfigurationError
            If any value cannot be interpreted.
        """
        country_code = digits_only(str(self._value("moderation", "default_country_code", DEFAULT_COUNTRY_CODE)))
        if not country_code:
            raise ConfigurationError("default_country_code must contain digits")

        allowed: list[Identity] = []
        for raw in split_list(self._value("moderation", "allowed_numbers", "")):
            identity = resolve_identity(raw, country_code)
            if identity is None:
                logger.warning("[APP CONFIGURATION] Ignoring admin number without digits: %r", raw)
                continue
            allowed.append(identity)

        max_entries = parse_int(self._value("dedup", "max_entries", 25_000), name="dedup.max_entries", minimum=1)
        trim_floor = parse_int(self._value("dedup", "trim_floor", 15_000), name="dedup.trim_floor")
        if trim_floor > max_entries:
            raise ConfigurationError("dedup.trim_floor must not exceed dedup.max_entries")

        return ModerationSettings(
            banned_terms=parse_terms(split_list(self._value("moderation", "banned_words", DEFAULT_BANNED_WORDS))),
            allowed_numbers=tuple(allowed),
            target_groups=tuple(dict.fromkeys(split_list(self._value("moderation", "target_groups", "")))),
            warnings_threshold=parse_int(
                self._value("moderation", "warnings_threshold", 3), name="moderation.warnings_threshold", minimum=1
            ),
            moderation_active=parse_bool(
                self._value("moderation", "moderation_active", True), name="moderation.moderation_active"
            ),
            reset_warnings_on_start=parse_bool(
                self._value("moderation", "reset_warnings_on_start", False), name="moderation.reset_warnings_on_start"
            ),
            default_country_code=country_code,
            announce_on_ready=parse_bool(
                self._value("moderation", "announce_on_ready", True), name="moderation.announce_on_ready"
            ),
            warnings_file=Path(str(self._value("storage", "warnings_file", DEFAULT_WARNINGS_FILE))).expanduser().resolve(),
            dedup_ttl_seconds=parse_float(self._value("dedup", "ttl_seconds", 24 * 3600), name="dedup.ttl_seconds"),
            dedup_max_entries=max_entries,
            dedup_trim_floor=trim_floor,
            dedup_hard_cap=parse_int(self._value("dedup", "hard_cap", 30_000), name="dedup.hard_cap", minimum=1),
            maintenance_interval_seconds=parse_float(
                self._value("maintenance", "interval_seconds", 15.0), name="maintenance.interval_seconds", minimum=0.1
            ),
            poll_interval_seconds=parse_float(
                self._value("polling", "interval_seconds", 5.0), name="polling.interval_seconds"
            ),
            poll_limit=parse_int(self._value("polling", "limit", 500), name="polling.limit", minimum=1),
        )
