"""Runtime configuration for the relay ingestion jobs."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from pipelines.common import DEFAULT_TIMEOUT_SECONDS
from pipelines.sources.mullvad import MULLVAD_RELAYS_URL
from pipelines.sources.nominatim import DEFAULT_USER_AGENT, NOMINATIM_URL

RELAYS_FILE = "relays.json"
RAW_API_FILE = "mullvad_api_raw.json"

DEFAULT_DATA_DIR = Path("data")
DEFAULT_TOOLS_DATA_DIR = Path("tools/data")
DEFAULT_GEOCODER_WAIT_SECONDS = 3.0

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class IngestSettings:
    """Where the ingestion reads its inputs from and writes its artifacts to."""

    api_url: str = MULLVAD_RELAYS_URL
    data_dir: Path = DEFAULT_DATA_DIR
    tools_data_dir: Path = DEFAULT_TOOLS_DATA_DIR
    fetch_timeout: float = DEFAULT_TIMEOUT_SECONDS
    nominatim_url: str = NOMINATIM_URL
    geocoder_user_agent: str = DEFAULT_USER_AGENT
    geocoder_wait_seconds: float = DEFAULT_GEOCODER_WAIT_SECONDS
    log_level: str = "INFO"
    debug: bool = False

    @property
    def lookup_dirs(self) -> tuple[Path, ...]:
        """Lookup tables are read from the tools directory first."""
        return (self.tools_data_dir, self.data_dir)

    @property
    def relays_path(self) -> Path:
        """The artifact the serving layer reads."""
        return self.data_dir / RELAYS_FILE

    @property
    def relays_output_paths(self) -> tuple[Path, ...]:
        return (self.tools_data_dir / RELAYS_FILE, self.relays_path)

    @property
    def raw_cache_paths(self) -> tuple[Path, ...]:
        return (self.tools_data_dir / RAW_API_FILE, self.data_dir / RAW_API_FILE)

    @property
    def city_coordinates_path(self) -> Path:
        return self.data_dir / "city-coordinates.json"

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()


def load_settings() -> IngestSettings:
    """Build settings from the environment (and a local ``.env`` file, if any)."""

    load_dotenv()
    return IngestSettings(
        api_url=os.getenv("RELAYS_API_URL", MULLVAD_RELAYS_URL),
        data_dir=Path(os.getenv("RELAYS_DATA_DIR", str(DEFAULT_DATA_DIR))),
        tools_data_dir=Path(os.getenv("RELAYS_TOOLS_DATA_DIR", str(DEFAULT_TOOLS_DATA_DIR))),
        fetch_timeout=_env_float("RELAYS_FETCH_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        nominatim_url=os.getenv("NOMINATIM_URL", NOMINATIM_URL),
        geocoder_user_agent=os.getenv("GEOCODER_USER_AGENT", DEFAULT_USER_AGENT),
        geocoder_wait_seconds=_env_float("GEOCODER_WAIT_SECONDS", DEFAULT_GEOCODER_WAIT_SECONDS),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        debug=_env_flag("INGEST_DEBUG") or _env_flag("DEBUG"),
    )


def configure_logging(settings: IngestSettings) -> None:
    logging.basicConfig(
        level=settings.effective_log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["IngestSettings", "RAW_API_FILE", "RELAYS_FILE", "configure_logging", "load_settings"]
