"""Application configuration via environment variables and .env file."""

import json
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, NoDecode
from pydantic_settings.sources import DotEnvSettingsSource, PydanticBaseSettingsSource

from fritzwatch.query.base import Endpoint

# Path to .env file (patch in tests to use tmp_path / ".env")
_ENV_FILE: Path = Path(".env")


class PresenceTarget(BaseModel):
    name: str
    address: str  # MAC or IP
    delay: float | None = None  # seconds; falls back to presence_delay


class RepeaterConfig(BaseModel):
    host: str
    port: int = 49000
    username: str | None = None
    password: str | None = None
    use_tls: bool = False
    name: str | None = None


def _split_csv(value: str) -> list[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def _maybe_json(value: str) -> object:
    value = value.strip()
    if value.startswith(("[", "{")):
        return json.loads(value)
    return None


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "FRITZWATCH_",
        "env_file_encoding": "utf-8",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Load .env from _ENV_FILE (patchable in tests)
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(
                settings_cls,
                env_file=_ENV_FILE,
                env_file_encoding="utf-8",
            ),
            file_secret_settings,
        )

    # Database
    db_path: Path = Path("./data/fritzwatch.db")

    # Logging
    log_level: str = "info"

    # Lookup backend: "tr064", "mock" or "none"
    query_mode: str = "tr064"

    # Main router (TR-064)
    router_host: str = "fritz.box"
    router_port: int = 49000
    router_username: str | None = None
    router_password: str | None = None
    router_tls: bool = False
    query_timeout: float = 5.0  # seconds per lookup

    # Repeaters queried as fallback
    # Env: FRITZWATCH_REPEATERS="192.168.178.2,192.168.178.3:49000"
    # or a JSON list of {"host", "port", "username", "password", "use_tls", "name"}
    repeaters: Annotated[list[RepeaterConfig], NoDecode] = []

    # Tracked identities
    # Env: FRITZWATCH_PRESENCE_TARGETS="Alice=AA:BB:CC:DD:EE:FF,Bob=192.168.178.20"
    # or a JSON list of {"name", "address", "delay"}
    presence_targets: Annotated[list[PresenceTarget], NoDecode] = []

    # Polling
    poll_interval: float = 5  # seconds between polls
    paused_interval: float = 5  # seconds between idle cycles while paused
    presence_delay: float = 0  # seconds before switching to "absent"
    timeout_log_threshold: int = 6
    error_log_threshold: int = 1
    anyone_sensor: bool = True

    # Call monitor
    callmonitor_enabled: bool = False
    callmonitor_host: str | None = None  # defaults to router_host
    callmonitor_port: int = 1012
    callmonitor_reconnect_interval: float = 30

    # Phonebook: JSON object of number → name
    phonebook: Annotated[dict[str, str], NoDecode] = {}

    # Notifications
    webhook_url: str | None = None
    message_presence_on: str | None = None  # "@" → name
    message_presence_off: str | None = None
    message_anyone_on: str | None = None
    message_anyone_off: str | None = None
    message_incoming: str | None = None  # "@" → caller, "%" → called number
    message_disconnected: str | None = None

    # Authentication (optional, omit to disable)
    auth_username: str = "admin"
    auth_password: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("repeaters", mode="before")
    @classmethod
    def parse_repeaters(cls, v: object) -> object:
        """Parse a JSON list or comma-separated host[:port] string."""
        if not isinstance(v, str):
            return v
        parsed = _maybe_json(v)
        if parsed is not None:
            return parsed
        repeaters = []
        for item in _split_csv(v):
            host, _, port = item.partition(":")
            repeaters.append({"host": host, "port": int(port) if port else 49000})
        return repeaters

    @field_validator("presence_targets", mode="before")
    @classmethod
    def parse_presence_targets(cls, v: object) -> object:
        """Parse a JSON list or comma-separated Name=address string."""
        if not isinstance(v, str):
            return v
        parsed = _maybe_json(v)
        if parsed is not None:
            return parsed
        targets = []
        for item in _split_csv(v):
            name, sep, address = item.partition("=")
            if not sep:
                name, address = item, item
            targets.append({"name": name.strip(), "address": address.strip()})
        return targets

    @field_validator("phonebook", mode="before")
    @classmethod
    def parse_phonebook(cls, v: object) -> object:
        """Parse a JSON object or comma-separated number=name string."""
        if not isinstance(v, str):
            return v
        parsed = _maybe_json(v)
        if parsed is not None:
            return parsed
        book = {}
        for item in _split_csv(v):
            number, sep, name = item.partition("=")
            if sep:
                book[number.strip()] = name.strip()
        return book

    def router_endpoint(self) -> Endpoint:
        return Endpoint(
            host=self.router_host,
            port=self.router_port,
            username=self.router_username,
            password=self.router_password,
            timeout=self.query_timeout,
            use_tls=self.router_tls,
            name="router",
        )

    def repeater_endpoints(self) -> list[Endpoint]:
        """Repeater endpoints; missing credentials fall back to the router's."""
        return [
            Endpoint(
                host=r.host,
                port=r.port,
                username=r.username or self.router_username,
                password=r.password or self.router_password,
                timeout=self.query_timeout,
                use_tls=r.use_tls,
                name=r.name or r.host,
            )
            for r in self.repeaters
        ]

    def target_delay(self, target: PresenceTarget) -> float:
        return target.delay if target.delay is not None else self.presence_delay


def load_config() -> Settings:
    """Load configuration from .env and environment (env overrides .env)."""
    return Settings()


settings = Settings()
