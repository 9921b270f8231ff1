"""
Conflict Service API
====================

FastAPI endpoints for conflict of interest checks.

Endpoints:
- POST /api/conflicts/check/{case_id}    - Check a stored case
- POST /api/conflicts/search             - Ad-hoc check (e.g. before case creation)
- GET  /api/conflicts/report/{report_id} - Stored check record
- GET  /api/conflicts/history/{case_id}  - Checks of a case, newest first
- GET  /api/conflicts/high-risk          - Latest HIGH/MEDIUM checks
- GET  /api/conflicts/stats              - Level distribution over the stats window
- GET  /health                           - Health check

Authentication is handled upstream; the checker id arrives in X-User-Id.

Run with:
    uvicorn conflict_service.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import utcnow
from .db.session import get_db, init_db, snapshot_session
from .engine import ConflictEngine
from .errors import (
    CaseNotFoundError,
    CheckTimeoutError,
    CorpusLookupError,
    PersistenceError,
    ValidationError,
)
from .report_store import SqlReportStore
from .schemas import (
    CandidateCheckRequest,
    CaseCheckRequest,
    ConflictCheckRecord,
    ConflictResult,
    ConflictStats,
    ErrorResponse,
    HealthResponse,
    HighRiskEntry,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def get_snapshot_db():
    """Database session running one snapshot transaction per request"""
    with snapshot_session() as db:
        yield db


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Conflict Service",
    description="Conflict of interest detection across the firm's case corpus",
    version=get_settings().service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


CORS_ALLOW_ORIGINS = _parse_cors_origins(os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8000,http://127.0.0.1:8000"
))

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    init_db()
    for warning in get_settings().validate_config():
        logger.warning(warning)


# =============================================================================
# Error handlers
# =============================================================================

def _error(status_code: int, error: str, detail: str, result: Optional[ConflictResult] = None):
    body = ErrorResponse(error=error, detail=detail, result=result)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(422, "validation_error", str(exc))


@app.exception_handler(CaseNotFoundError)
async def case_not_found_handler(request: Request, exc: CaseNotFoundError):
    return _error(404, "case_not_found", str(exc))


@app.exception_handler(CorpusLookupError)
async def lookup_error_handler(request: Request, exc: CorpusLookupError):
    # Outcome unknown: must not be read as "no conflict"
    if isinstance(exc, CheckTimeoutError):
        return _error(504, "check_timeout", str(exc))
    return _error(503, "corpus_unavailable", str(exc))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return _error(500, "audit_not_recorded", str(exc), result=exc.result)


# =============================================================================
# Routes
# =============================================================================

router = APIRouter(prefix="/api/conflicts", tags=["Conflicts"])


@router.post("/check/{case_id}", response_model=ConflictResult, summary="Run conflict check for a case",
             responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse},
                        500: {"model": ErrorResponse}})
def run_conflict_check(
    case_id: int,
    request: Optional[CaseCheckRequest] = None,
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_snapshot_db),
):
    """Check a stored case against every other case in the corpus."""
    engine = ConflictEngine.for_session(db)
    language = request.language if request else None
    result = engine.check_case(case_id, checked_by=x_user_id, language=language)
    logger.info(f"Manual conflict check: case={case_id} level={result.level.value} by={x_user_id}")
    return result


@router.post("/search", response_model=ConflictResult, summary="Ad-hoc conflict search",
             responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse},
                        500: {"model": ErrorResponse}})
def search_conflicts(
    request: CandidateCheckRequest,
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_snapshot_db),
):
    """Check parties/entities that are not (yet) a stored case."""
    engine = ConflictEngine.for_session(db)
    return engine.check_candidate(
        request.parties,
        request.affiliated_entities,
        request.reviewer_ids,
        exclude_case_id=request.exclude_case_id,
        checked_by=x_user_id,
        language=request.language,
    )


@router.get("/report/{report_id}", response_model=ConflictCheckRecord, summary="Get check record")
def get_conflict_report(report_id: int, db: Session = Depends(get_db)):
    record = SqlReportStore(db).get(report_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return record


@router.get("/history/{case_id}", response_model=List[ConflictCheckRecord], summary="Check history of a case")
def get_conflict_history(case_id: int, db: Session = Depends(get_db)):
    return SqlReportStore(db).history_for_case(case_id)


@router.get("/high-risk", response_model=List[HighRiskEntry], summary="Latest high/medium checks")
def get_high_risk_conflicts(db: Session = Depends(get_db)):
    return SqlReportStore(db).high_risk(limit=get_settings().high_risk_list_limit)


@router.get("/stats", response_model=ConflictStats, summary="Conflict check statistics")
def get_conflict_stats(db: Session = Depends(get_db)):
    window = get_settings().stats_window_days
    since = utcnow() - timedelta(days=window)
    store = SqlReportStore(db)
    levels = store.level_stats(since)
    return ConflictStats(
        window_days=window,
        total_checks=sum(levels.values()),
        level_distribution=levels,
        top_conflicted_clients=store.top_conflicted_clients(since),
    )


app.include_router(router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        version=get_settings().service_version,
        timestamp=datetime.now(),
    )
