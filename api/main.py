"""
FastAPI backend: urgency-sorted incident feed, community verification queue,
verify/resolve actions, and the change-feed webhook the store posts row changes to.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dotenv import load_dotenv

from core.config import TriageConfig, load_config
from core.events import MalformedEventError, parse_change_event
from core.models import Coordinates, IncidentValidationError, format_iso, validate_create_fields
from feed.score_feed import ScoreFeed
from reconciler.reconciler import Reconciler
from store.base import IncidentStore, StoreError
from store.memory import InMemoryIncidentStore
from store.rest import RestIncidentStore
from verification.analyzer import (
    REASON_CONFLICT,
    REASON_NOT_FOUND,
    ActionResult,
    VerificationAnalyzer,
)

load_dotenv(override=True)

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("incident_api")


# -----------------------------------------------------------------------------
# Engine wiring (one explicit instance per app; no module-level projection)
# -----------------------------------------------------------------------------
def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Engine:
    config: TriageConfig
    store: IncidentStore
    reconciler: Reconciler
    feed: ScoreFeed
    analyzer: VerificationAnalyzer
    clock: Callable[[], datetime] = _utcnow


def build_store(config: TriageConfig) -> IncidentStore:
    """REST store when STORE_URL is set, else an in-memory store seeded with demo incidents."""
    if config.store_url:
        logger.info("using REST incident store at %s (table=%s)", config.store_url, config.store_table)
        return RestIncidentStore(
            config.store_url,
            api_key=config.store_api_key,
            table=config.store_table,
            timeout=config.action_timeout,
        )
    logger.info("STORE_URL not set; using in-memory incident store with demo data")
    store = InMemoryIncidentStore()
    store.seed()
    return store


def build_engine(
    config: Optional[TriageConfig] = None,
    store: Optional[IncidentStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Engine:
    config = config or load_config()
    store = store if store is not None else build_store(config)
    clock = clock or _utcnow
    reconciler = Reconciler(store, clock=clock, resync_interval=config.resync_interval)
    return Engine(
        config=config,
        store=store,
        reconciler=reconciler,
        feed=ScoreFeed(reconciler, config, clock=clock),
        analyzer=VerificationAnalyzer(reconciler, store, config, clock=clock),
        clock=clock,
    )


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------
class CreateIncidentRequest(BaseModel):
    type: Optional[str] = None
    location: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    severity: Optional[str] = None
    panic: Optional[float] = None
    description: Optional[str] = None
    sentiment: Optional[str] = None  # from the audio classifier
    transcription: Optional[str] = None  # from the voice report


# -----------------------------------------------------------------------------
# No-cache for dynamic API responses (avoid 304 for stale data)
# -----------------------------------------------------------------------------
NO_CACHE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache"}

ACTION_STATUS = {REASON_NOT_FOUND: 404, REASON_CONFLICT: 409}


def _action_response(result: ActionResult) -> JSONResponse:
    status = 200 if result.ok else ACTION_STATUS.get(result.reason, 502)
    return JSONResponse(status_code=status, content=result.to_dict(), headers=NO_CACHE_HEADERS)


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """Build the app. Without an engine one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        eng = app.state.engine if getattr(app.state, "engine", None) is not None else build_engine()
        app.state.engine = eng
        # First resync is a blocking store call; keep it off the event loop
        await asyncio.to_thread(eng.reconciler.start)
        try:
            yield
        finally:
            await asyncio.to_thread(eng.reconciler.stop)
            close = getattr(eng.store, "close", None)
            if callable(close):
                close()

    app = FastAPI(title="Incident Triage API", lifespan=lifespan)
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _engine(request: Request) -> Engine:
        return request.app.state.engine

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------
    @app.get("/incidents")
    def get_sorted_feed(request: Request, include_resolved: bool = False):
        """Active incidents, highest urgency first, each with urgencyScore."""
        eng = _engine(request)
        feed = eng.feed.get_sorted_feed(include_resolved=include_resolved)
        return JSONResponse(content=feed.to_dict(), headers=NO_CACHE_HEADERS)

    @app.get("/incidents/{incident_id}")
    def get_incident(request: Request, incident_id: int):
        incident = _engine(request).reconciler.snapshot().get(incident_id)
        if incident is None:
            raise HTTPException(status_code=404, detail="Incident not found")
        return JSONResponse(content=incident.to_dict(), headers=NO_CACHE_HEADERS)

    @app.post("/incidents")
    def create_incident(request: Request, body: CreateIncidentRequest):
        """Validate and forward to the store. The feed shows it once the change event lands."""
        eng = _engine(request)
        try:
            draft = validate_create_fields(body.model_dump(exclude_none=True), eng.config.default_coordinates)
        except IncidentValidationError as e:
            logger.warning("create rejected: %s", e)
            return JSONResponse(status_code=400, content={"detail": str(e)}, headers=NO_CACHE_HEADERS)
        try:
            incident = eng.store.create_incident(draft)
        except StoreError as e:
            logger.warning("create failed: %s", e)
            return JSONResponse(status_code=502, content={"detail": str(e)}, headers=NO_CACHE_HEADERS)
        return JSONResponse(status_code=201, content=incident.to_dict(), headers=NO_CACHE_HEADERS)

    @app.get("/verification")
    def get_verification_queue(
        request: Request,
        lat: Optional[float] = Query(default=None, ge=-90, le=90),
        lng: Optional[float] = Query(default=None, ge=-180, le=180),
    ):
        """Unverified, unresolved incidents, newest first. Without lat/lng distances are unknown."""
        if (lat is None) != (lng is None):
            return JSONResponse(status_code=400, content={"detail": "lat and lng must be given together"},
                                headers=NO_CACHE_HEADERS)
        observer = Coordinates(lat, lng) if lat is not None else None
        queue = _engine(request).analyzer.verification_queue(observer)
        return JSONResponse(content=queue.to_dict(), headers=NO_CACHE_HEADERS)

    @app.post("/incidents/{incident_id}/verify")
    def verify_incident(request: Request, incident_id: int):
        return _action_response(_engine(request).analyzer.verify(incident_id))

    @app.post("/incidents/{incident_id}/resolve")
    def resolve_incident(request: Request, incident_id: int):
        """Flag as fake: resolves the incident."""
        return _action_response(_engine(request).analyzer.flag(incident_id))

    @app.post("/feed/events", status_code=202)
    async def receive_change_event(request: Request):
        """Change-feed webhook. Malformed events are acknowledged and dropped so the sender does not retry them."""
        eng = _engine(request)
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        try:
            event = parse_change_event(payload)
        except MalformedEventError as e:
            logger.warning("webhook: dropping malformed change event: %s", e)
            return JSONResponse(status_code=202, content={"accepted": False, "detail": str(e)}, headers=NO_CACHE_HEADERS)
        eng.store.feed.publish(event)
        return JSONResponse(
            status_code=202,
            content={"accepted": True, "type": event.kind.value, "incident_id": event.incident_id},
            headers=NO_CACHE_HEADERS,
        )

    @app.post("/resync")
    def trigger_resync(request: Request):
        """Manual re-trigger of a full resync."""
        eng = _engine(request)
        ok = eng.reconciler.resync()
        snap = eng.reconciler.snapshot()
        return JSONResponse(
            status_code=200 if ok else 502,
            content={"ok": ok, "incidents": len(snap.incidents), "lastSyncedAt": format_iso(snap.synced_at)},
            headers=NO_CACHE_HEADERS,
        )

    @app.get("/health")
    def health(request: Request):
        eng = _engine(request)
        snap = eng.reconciler.snapshot()
        now = eng.clock()
        return JSONResponse(
            content={
                "status": "ok",
                "store": getattr(eng.store, "kind", type(eng.store).__name__),
                "incidents": len(snap.incidents),
                "lastSyncedAt": format_iso(snap.synced_at),
                "stale": snap.is_stale(now, eng.config.stale_after_seconds),
                "droppedEvents": eng.reconciler.dropped_events,
                "failedResyncs": eng.reconciler.failed_resyncs,
            },
            headers=NO_CACHE_HEADERS,
        )

    return app


app = create_app()
