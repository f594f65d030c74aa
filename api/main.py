"""FastAPI service exposing the relay artifact and an on-demand geocode lookup."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from jobs.config import load_settings
from pipelines.sources.nominatim import GeocodeError, parse_first_result, query_nominatim
from storage.exports import EXPORT_FORMATS, export_relays
from storage.json_store import read_json

ALLOWED_FORMATS = {"json", *EXPORT_FORMATS}
MEDIA_TYPES = {"csv": "text/csv", "parquet": "application/vnd.apache.parquet"}

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(_: FastAPI):
    load_settings().data_dir.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(title="Relay Map API", version="0.1.0", lifespan=lifespan)


def _configure_cors() -> None:
    raw_origins = os.getenv("API_CORS_ORIGINS", "*")
    origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )


_configure_cors()


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "uptime": time.monotonic() - _started_at}


def _read_relays() -> Any:
    path = load_settings().relays_path
    try:
        return read_json(path, allow_nan=False)
    except (OSError, ValueError) as exc:
        logger.debug("Serving empty relay list; %s unreadable: %s", path, exc)
        return []


@app.get("/api/relays")
def get_relays(
    background_tasks: BackgroundTasks,
    format: str = Query("json", description="Response format: json, csv, or parquet"),
):
    fmt = format.lower()
    if fmt not in ALLOWED_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{format}'.")

    relays = _read_relays()
    if fmt == "json":
        return JSONResponse(content=relays)

    suffix = f".{fmt}"
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        dest = Path(tmp.name)
    export_relays(relays if isinstance(relays, list) else [], dest, fmt=fmt)

    def _cleanup(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    background_tasks.add_task(_cleanup, dest)
    return FileResponse(
        dest, media_type=MEDIA_TYPES[fmt], filename=f"relays{suffix}", background=background_tasks
    )


@app.get("/api/geocode")
async def geocode(city: str = Query("", description="City name to look up")):
    city = city.strip()
    if not city:
        raise HTTPException(status_code=400, detail="missing city query parameter")

    settings = load_settings()
    try:
        payload = await query_nominatim(
            city,
            url=settings.nominatim_url,
            user_agent=settings.geocoder_user_agent,
            timeout=settings.fetch_timeout,
        )
    except GeocodeError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if not isinstance(payload, list) or not payload:
        raise HTTPException(status_code=404, detail="not found")
    result = parse_first_result(payload, city)
    if result is None:
        raise HTTPException(status_code=502, detail="invalid coordinates returned")
    return {"lat": result.lat, "lon": result.lon, "display_name": result.display_name}
