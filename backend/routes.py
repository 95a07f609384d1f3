"""Safewatch Backend — FastAPI Routes"""

import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import classifier
from config import RATE_LIMIT, RATE_WINDOW, SCHEDULER_ENABLED
from engine import SafetyEngine, get_engine
from errors import InvalidInput, NotFound, StoreUnavailable
from models import (
    AuthorityReport, AuthorityReportRequest, Classification, Comment,
    LocationRatings, Moderation, Pattern, PatternRun, Rating, RatingRequest,
    Report, ReportRequest, Suggestions, SweepResult, TextRequest, Vote,
    VoteCounts, VoteRequest,
)

logger = logging.getLogger("safewatch")


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Safewatch API", version="1.0.0")

_allowed_origins = [
    f"http://localhost:{p}" for p in range(3000, 3010)
] + [
    f"http://localhost:{p}" for p in range(5173, 5180)
] + [
    f"http://127.0.0.1:{p}" for p in range(3000, 3010)
] + [
    f"http://127.0.0.1:{p}" for p in range(5173, 5180)
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────── Error mapping ──────────────────────

@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Store unavailable on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable. Try again shortly."})


# ─────────────────────────── Startup / Shutdown ─────────────────

@app.on_event("startup")
async def startup_event():
    if SCHEDULER_ENABLED:
        get_engine().scheduler.start()
    else:
        logger.info("Scheduler disabled (SAFEWATCH_SCHEDULER=0)")


@app.on_event("shutdown")
async def shutdown_event():
    if SCHEDULER_ENABLED:
        await get_engine().scheduler.stop()


# ─────────────────────────── Rate Limiting ──────────────────────

_rate_store: dict[str, list[float]] = {}
_RATE_EVICT_INTERVAL = 300  # evict stale IPs every 5 minutes
_last_rate_evict = 0.0


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    if RATE_LIMIT <= 0:
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    now = time.time()

    # Periodically evict stale IPs to prevent memory leak
    global _last_rate_evict
    if now - _last_rate_evict > _RATE_EVICT_INTERVAL:
        stale_ips = [ip for ip, timestamps in _rate_store.items()
                     if not timestamps or now - timestamps[-1] > RATE_WINDOW * 2]
        for ip in stale_ips:
            del _rate_store[ip]
        _last_rate_evict = now

    timestamps = [t for t in _rate_store.get(client_ip, []) if now - t < RATE_WINDOW]
    if len(timestamps) >= RATE_LIMIT:
        _rate_store[client_ip] = timestamps
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Try again in a minute."},
        )

    timestamps.append(now)
    _rate_store[client_ip] = timestamps
    return await call_next(request)


@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


# ─────────────────────────── Reports ────────────────────────────

@app.post("/api/reports", response_model=Report)
def submit_report(req: ReportRequest, engine: SafetyEngine = Depends(get_engine)):
    report = engine.ingest(req.text, req.lat, req.lng, req.reportType)
    logger.info(f"Report submitted: {report.id} ({report.riskLevel}, aiParsed={report.aiParsed})")
    return report


@app.get("/api/reports/near", response_model=list[Report])
def fetch_reports_near(
    lat: float,
    lng: float,
    radiusKm: Optional[float] = Query(default=None, gt=0),
    engine: SafetyEngine = Depends(get_engine),
):
    return engine.reports.fetch_near({"lat": lat, "lng": lng}, radiusKm)


@app.get("/api/reports/{report_id}", response_model=Report)
def get_report(report_id: str, engine: SafetyEngine = Depends(get_engine)):
    return engine.reports.get(report_id)


# ─────────────────────────── Votes & Comments ───────────────────

@app.post("/api/reports/{report_id}/votes", response_model=VoteCounts)
def vote(report_id: str, req: VoteRequest, engine: SafetyEngine = Depends(get_engine)):
    verdict = classifier.moderate(req.comment) if req.comment.strip() else None
    if verdict is not None and not verdict.approved:
        raise InvalidInput(verdict.reason or "comment rejected by moderation")
    return engine.credibility.vote(report_id, req.voterId, req.voteType, req.comment)


@app.get("/api/reports/{report_id}/votes", response_model=VoteCounts)
def vote_counts(report_id: str, engine: SafetyEngine = Depends(get_engine)):
    return engine.credibility.vote_counts(report_id)


@app.get("/api/reports/{report_id}/votes/{voter_id}", response_model=Optional[Vote])
def user_vote(report_id: str, voter_id: str, engine: SafetyEngine = Depends(get_engine)):
    return engine.credibility.user_vote(report_id, voter_id)


@app.delete("/api/reports/{report_id}/votes/{voter_id}", response_model=VoteCounts)
def remove_vote(report_id: str, voter_id: str, engine: SafetyEngine = Depends(get_engine)):
    return engine.credibility.remove_vote(report_id, voter_id)


@app.get("/api/reports/{report_id}/comments", response_model=list[Comment])
def comments(
    report_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    engine: SafetyEngine = Depends(get_engine),
):
    return engine.credibility.comments(report_id, limit)


# ─────────────────────────── Patterns ───────────────────────────

@app.get("/api/patterns/near", response_model=list[Pattern])
def fetch_patterns_near(lat: float, lng: float, engine: SafetyEngine = Depends(get_engine)):
    return engine.patterns.fetch_near({"lat": lat, "lng": lng})


# ─────────────────────────── Location Ratings ───────────────────

@app.post("/api/ratings", response_model=Rating)
def submit_rating(req: RatingRequest, engine: SafetyEngine = Depends(get_engine)):
    ratings = req.model_dump(include={"lighting", "footTraffic", "security", "businesses", "comment"})
    return engine.ratings.submit_rating({"lat": req.lat, "lng": req.lng}, ratings, req.userId)


@app.get("/api/ratings", response_model=LocationRatings)
def ratings_for_location(lat: float, lng: float, engine: SafetyEngine = Depends(get_engine)):
    return engine.ratings.ratings_for_location(lat, lng)


@app.get("/api/ratings/user", response_model=Optional[Rating])
def user_rating(lat: float, lng: float, userId: str, engine: SafetyEngine = Depends(get_engine)):
    return engine.ratings.user_rating(lat, lng, userId)


# ─────────────────────────── Classification ─────────────────────

@app.post("/api/classify", response_model=Classification)
def classify_text(req: TextRequest):
    if not req.text.strip():
        raise HTTPException(status_code=400, detail="Invalid input")
    return classifier.classify(req.text)


@app.post("/api/moderate", response_model=Moderation)
def moderate_text(req: TextRequest):
    if not req.text.strip():
        raise HTTPException(status_code=400, detail="Invalid input")
    return classifier.moderate(req.text)


@app.get("/api/suggestions", response_model=Suggestions)
def suggestions(
    partialText: str = "",
    category: Optional[str] = None,
    engine: SafetyEngine = Depends(get_engine),
):
    return engine.suggestions.suggestions(partialText, category)


# ─────────────────────────── Authority Summaries ────────────────

@app.post("/api/authority-reports", response_model=AuthorityReport)
def authority_report(req: AuthorityReportRequest, engine: SafetyEngine = Depends(get_engine)):
    return engine.authority.generate(req.geohash, req.days)


# ─────────────────────────── Maintenance ────────────────────────

@app.post("/api/admin/sweep", response_model=SweepResult)
def run_sweep(engine: SafetyEngine = Depends(get_engine)):
    deleted = engine.scheduler.sweep.run_once()
    if deleted is None:
        raise HTTPException(status_code=409, detail="Sweep already running")
    return SweepResult(deleted=deleted)


@app.post("/api/admin/patterns", response_model=PatternRun)
def run_patterns(engine: SafetyEngine = Depends(get_engine)):
    result = engine.scheduler.patterns.run_once()
    if result is None:
        raise HTTPException(status_code=409, detail="Pattern detection already running")
    return result


@app.get("/api/admin/status")
def status(engine: SafetyEngine = Depends(get_engine)):
    return {
        "collections": engine.store.stats(),
        "jobs": {job.name: {"running": job.running} for job in engine.scheduler.jobs},
    }
