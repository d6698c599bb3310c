"""
FastAPI application entry point.

Run with: uvicorn turismo.main:app
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, Request, UploadFile

# Load environment variables from .env (optional) before settings are read
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from .errors import IngestError
from .fetch import SheetFetcher
from .ingest import Ingestor
from .models import HealthResponse, ParseResponse, PlaceLookup, PlacesResponse, RefreshStatus
from .normalize import batch_hash, parse_csv_bytes
from .settings import settings
from .sources import load_legacy_files

logger = logging.getLogger(__name__)


def build_ingestor() -> Ingestor:
    return Ingestor(
        fetcher=SheetFetcher(settings.source_url, timeout=settings.FETCH_TIMEOUT),
        strategy=settings.COLUMN_STRATEGY,
        fetch_timeout=settings.FETCH_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ingestor: Ingestor = app.state.ingestor

    if settings.LEGACY_DIR:
        records, report = load_legacy_files(settings.LEGACY_DIR)
        try:
            ingestor.apply_batch(records, report, force=True)
        except IngestError as exc:
            logger.warning("legacy sources not loaded: %s", exc)

    if settings.REFRESH_INTERVAL > 0:
        ingestor.start(settings.REFRESH_INTERVAL)
    elif settings.REFRESH_ON_STARTUP:
        await ingestor.refresh()

    yield

    await ingestor.stop()


app = FastAPI(
    title="turismo-feed",
    description="Jalisco tourism places from a spreadsheet export, normalized for the map dashboard",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.ingestor = build_ingestor()


def _ingestor(request: Request) -> Ingestor:
    return request.app.state.ingestor


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


@app.get("/places", response_model=PlacesResponse)
def list_places(request: Request):
    snapshot = _ingestor(request).store.snapshot
    places = list(snapshot.places.values())
    return {"batch_hash": snapshot.batch_hash, "count": len(places), "places": places}


@app.get("/places/{name}", response_model=PlaceLookup)
def get_place(name: str, request: Request):
    return _ingestor(request).store.lookup(name)


@app.get("/status", response_model=RefreshStatus)
def status(request: Request):
    return _ingestor(request).last_status


@app.post("/refresh", response_model=RefreshStatus)
async def refresh(request: Request):
    return await _ingestor(request).refresh(force=True)


@app.post("/parse", response_model=ParseResponse)
async def parse_csv(request: Request, file: UploadFile = File(...)):
    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")

    raw = await file.read()
    records, report = parse_csv_bytes(raw, _ingestor(request).strategy)
    return {"batch_hash": batch_hash(records), "records": records, "report": report}
