"""Environment registry: login identity and named environments.

The registry lives in ~/.devdrop/config.yaml. Every mutation is a full
load-mutate-save cycle; there is no long-lived in-process copy.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import yaml

from .config import CONFIG_FILE
from .errors import ConfigParseError, ConfigWriteError
from .naming import normalize_name

logger = logging.getLogger("devdrop.registry")

DEFAULT_BASE_IMAGE = "ubuntu:24.04"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value, key: str) -> datetime | None:
    """Parse a stored timestamp. Accepts ISO strings and YAML-native datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            raise ConfigParseError(f"failed to parse config file: invalid {key} timestamp {value!r}")
    else:
        raise ConfigParseError(f"failed to parse config file: invalid {key} timestamp {value!r}")
    # 0001-01-01 is how older config files spelled "unset"
    if dt.year == 1:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_time(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


@dataclass
class Environment:
    image: str = ""
    base_image: str = ""
    created: datetime | None = None
    last_updated: datetime | None = None
    description: str = ""
    last_container: str = ""

    @classmethod
    def from_dict(cls, data) -> "Environment":
        if not isinstance(data, dict):
            raise ConfigParseError("failed to parse config file: environment entry is not a mapping")
        return cls(
            image=_str(data, "image"),
            base_image=_str(data, "base_image"),
            created=_parse_time(data.get("created"), "created"),
            last_updated=_parse_time(data.get("last_updated"), "last_updated"),
            description=_str(data, "description"),
            last_container=_str(data, "last_container"),
        )

    def to_dict(self) -> dict:
        return {
            "image": self.image,
            "base_image": self.base_image,
            "created": _format_time(self.created),
            "last_updated": _format_time(self.last_updated),
            "description": self.description,
            "last_container": self.last_container,
        }


def personal_image_reference(username: str, name: str) -> str:
    """Registry reference for a user's environment; empty when not logged in."""
    if not username:
        return ""
    return f"{username}/{normalize_name(name)}:latest"


@dataclass
class Registry:
    username: str = ""
    base_image: str = DEFAULT_BASE_IMAGE
    auth_token: str = ""
    current_environment: str = ""
    environments: dict[str, Environment] = field(default_factory=dict)
    path: Path | None = field(default=None, repr=False, compare=False)

    # -- persistence ---------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Registry":
        """Read the registry, returning defaults if the file doesn't exist yet."""
        path = path or CONFIG_FILE
        if not path.exists():
            logger.debug("No config at %s, using defaults", path)
            return cls(path=path)

        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ConfigParseError(f"failed to parse config file: {e}")
        except OSError as e:
            raise ConfigParseError(f"failed to read config file: {e}")

        if data is None:
            return cls(path=path)
        if not isinstance(data, dict):
            raise ConfigParseError("failed to parse config file: expected a mapping at top level")

        envs = data.get("environments") or {}
        if not isinstance(envs, dict):
            raise ConfigParseError("failed to parse config file: 'environments' is not a mapping")

        return cls(
            username=_str(data, "username"),
            base_image=_str(data, "base_image") or DEFAULT_BASE_IMAGE,
            auth_token=_str(data, "auth_token"),
            current_environment=_str(data, "current_environment"),
            environments={str(name): Environment.from_dict(env) for name, env in envs.items()},
            path=path,
        )

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "base_image": self.base_image,
            "auth_token": self.auth_token,
            "current_environment": self.current_environment,
            "environments": {name: env.to_dict() for name, env in self.environments.items()},
        }

    def save(self):
        """Overwrite the config file with the full record."""
        path = self.path or CONFIG_FILE
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Holds the registry auth token
            path.touch(mode=0o600, exist_ok=True)
            path.chmod(0o600)
            path.write_text(
                yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False, allow_unicode=True)
            )
        except OSError as e:
            raise ConfigWriteError(f"failed to write config file: {e}")
        logger.debug("Saved config to %s", path)

    # -- mutations (each one saves) -------------------------------------------

    def set_username(self, username: str):
        self.username = username
        self.save()

    def set_auth_token(self, auth_token: str):
        self.auth_token = auth_token
        self.save()

    def set_current_environment(self, name: str):
        """Select the active environment. Existence is checked by the caller."""
        self.current_environment = normalize_name(name)
        self.save()

    def add_or_update_environment(self, name: str, env: Environment):
        self.environments[normalize_name(name)] = env
        self.save()

    def set_environment_container(self, name: str, container_id: str):
        """Record the latest container for an environment, creating it if needed."""
        name = normalize_name(name)
        now = utcnow()
        env = self.environments.get(name)
        if env is None:
            env = Environment(created=now)
        env.last_container = container_id
        env.last_updated = now
        self.environments[name] = env
        self.save()

    # -- queries --------------------------------------------------------------

    def get_environment(self, name: str) -> Environment | None:
        return self.environments.get(normalize_name(name))

    def has_environments(self) -> bool:
        return bool(self.environments)

    def sorted_environment_names(self) -> list[str]:
        return sorted(self.environments)

    def resolve_current_environment(self) -> str:
        """Return the active environment, falling back to the most recently updated one.

        A stale or unset pointer never fails; it resolves to the environment with
        the latest last_updated (smallest name on ties), or "" if there are none.
        """
        if self.current_environment and self.current_environment in self.environments:
            return self.current_environment

        best = ""
        best_time = None
        for name in self.sorted_environment_names():
            updated = self.environments[name].last_updated
            if not best:
                best, best_time = name, updated
            elif updated is not None and (best_time is None or updated > best_time):
                best, best_time = name, updated
        return best

    def personal_image_reference(self, name: str) -> str:
        return personal_image_reference(self.username, name)
