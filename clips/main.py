from collections import defaultdict
from contextlib import asynccontextmanager, contextmanager
from functools import wraps
from fastapi import FastAPI, HTTPException, Depends, Request, Header
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
import threading
import time
import logging
from typing import List, Optional
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

from . import models, schemas
from .database import SessionLocal, init_db
from .config import settings
from .errors import ClipErrorKind, ClipServiceError, NoSuchClipError
from .ids import AidGenerator
from .policies import SettingsPolicyLookup
from .repositories import SqlClipRepository, SqlClipNoteRepository, SqlNoteRepository
from .service import ClipService

# Logging
logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("🗄️ Database tables ready")
    yield

app = FastAPI(
    title="Clips API",
    description="Clips: user-curated collections of notes",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=600
)

# Prometheus Metrics
HTTP_REQUESTS = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'Request duration', ['method', 'endpoint'])
CLIP_OPERATIONS = Counter('clip_operations_total', 'Clip service operations', ['operation', 'result'])
ACTIVE_CLIPS = Gauge('clips_total', 'Total clips in database')
CLIP_MEMBERSHIPS = Gauge('clip_notes_total', 'Total notes across all clips')

# Shared across requests, the counter keeps ids unique within a millisecond
id_generator = AidGenerator()
policy_lookup = SettingsPolicyLookup()

# Database dependency
def get_db():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        db.close()
        raise HTTPException(status_code=503, detail="Database connection failed")

    try:
        yield db
    finally:
        db.close()

def get_clip_service(db: Session = Depends(get_db)) -> ClipService:
    return ClipService(
        clips=SqlClipRepository(db),
        clip_notes=SqlClipNoteRepository(db),
        notes=SqlNoteRepository(db),
        policies=policy_lookup,
        ids=id_generator,
    )

def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id

# Rate limiting, one bucket per (client, scope)
request_counts = defaultdict(list)
request_counts_lock = threading.Lock()

def prune_request_counts(scope: str, now: float, window: int):
    """Drop the buckets of a scope that have no request left inside the window"""
    stale = [
        key for key, stamps in request_counts.items()
        if key[1] == scope and (not stamps or now - stamps[-1] >= window)
    ]
    for key in stale:
        del request_counts[key]

def rate_limit(max_requests: int = 100, window: int = 300, scope: str = "default"):
    def decorator(func):
        @wraps(func)
        def wrapper(request: Request, *args, **kwargs):
            client_ip = request.client.host if request.client else "unknown"
            key = (client_ip, scope)
            now = time.time()

            with request_counts_lock:
                prune_request_counts(scope, now, window)
                recent = [t for t in request_counts.get(key, []) if now - t < window]

                if len(recent) >= max_requests:
                    request_counts[key] = recent
                    raise HTTPException(status_code=429, detail="Rate limit exceeded")

                recent.append(now)
                request_counts[key] = recent

            return func(request, *args, **kwargs)
        return wrapper
    return decorator

ERROR_STATUS = {
    ClipErrorKind.NO_SUCH_CLIP: 404,
    ClipErrorKind.ALREADY_ADDED: 409,
    ClipErrorKind.TOO_MANY_CLIP_NOTES: 400,
    ClipErrorKind.TOO_MANY_CLIPS: 400,
}

def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = schemas.ErrorResponse(error=schemas.ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())

@app.exception_handler(ClipServiceError)
async def clip_service_error_handler(request: Request, exc: ClipServiceError):
    return error_response(ERROR_STATUS[exc.kind], exc.kind.value, str(exc))

@contextmanager
def track(operation: str):
    try:
        yield
    except ClipServiceError as e:
        CLIP_OPERATIONS.labels(operation=operation, result=e.kind.value).inc()
        raise
    CLIP_OPERATIONS.labels(operation=operation, result="ok").inc()

# Metrics middleware
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        HTTP_REQUESTS.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code)
        ).inc()

        REQUEST_DURATION.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(process_time)

        status_emoji = "✅" if response.status_code < 400 else "❌"
        logger.info(f"{status_emoji} {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")

        response.headers["X-Process-Time"] = str(process_time)
        return response

    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"💥 {request.method} {request.url.path} - ERROR: {e} - {process_time:.3f}s")

        return JSONResponse(
            status_code=500,
            content={"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}
        )

# Metrics endpoint
@app.get("/metrics")
def get_metrics(db: Session = Depends(get_db)):
    """Prometheus metrics endpoint"""
    try:
        ACTIVE_CLIPS.set(SqlClipRepository(db).count_by())
        CLIP_MEMBERSHIPS.set(SqlClipNoteRepository(db).count_by())
    except SQLAlchemyError as e:
        logger.warning(f"Could not refresh clip gauges: {e}")

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# Health check
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment
    }

# Create clip
@app.post("/clips", response_model=schemas.Clip)
@rate_limit(max_requests=settings.rate_limit_write_requests, window=settings.rate_limit_window, scope="write")
def create_clip(request: Request, clip: schemas.ClipCreate, me: str = Depends(get_current_user),
                service: ClipService = Depends(get_clip_service)):
    with track("create"):
        return service.create(me, clip.name, clip.is_public, clip.description)

# List own clips
@app.get("/clips", response_model=List[schemas.Clip])
@rate_limit(max_requests=settings.rate_limit_requests, window=settings.rate_limit_window, scope="read")
def list_clips(request: Request, limit: int = 10, until_id: Optional[str] = None,
               me: str = Depends(get_current_user), db: Session = Depends(get_db)):
    limit = max(1, min(limit, 100))
    return SqlClipRepository(db).list_by_user(me, limit=limit, until_id=until_id)

def get_visible_clip(db: Session, me: str, clip_id: str) -> models.Clip:
    clip = SqlClipRepository(db).find_one_by(id=clip_id)
    if clip is None or (not clip.is_public and clip.user_id != me):
        raise NoSuchClipError()
    return clip

# Show clip
@app.get("/clips/{clip_id}", response_model=schemas.Clip)
@rate_limit(max_requests=settings.rate_limit_requests, window=settings.rate_limit_window, scope="read")
def show_clip(request: Request, clip_id: str, me: str = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_visible_clip(db, me, clip_id)

# Update clip
@app.patch("/clips/{clip_id}", status_code=204)
@rate_limit(max_requests=settings.rate_limit_write_requests, window=settings.rate_limit_window, scope="write")
def update_clip(request: Request, clip_id: str, changes: schemas.ClipUpdate, me: str = Depends(get_current_user),
                service: ClipService = Depends(get_clip_service)):
    fields = changes.model_dump(exclude_unset=True)
    # name and is_public are not nullable, a null for them means "leave as is"
    fields = {key: value for key, value in fields.items() if value is not None or key == "description"}

    with track("update"):
        service.update(me, clip_id, **fields)
    return Response(status_code=204)

# Delete clip
@app.delete("/clips/{clip_id}", status_code=204)
@rate_limit(max_requests=settings.rate_limit_write_requests, window=settings.rate_limit_window, scope="write")
def delete_clip(request: Request, clip_id: str, me: str = Depends(get_current_user),
                service: ClipService = Depends(get_clip_service)):
    with track("delete"):
        service.delete(me, clip_id)
    return Response(status_code=204)

# Notes in a clip
@app.get("/clips/{clip_id}/notes", response_model=schemas.ClipNotes)
@rate_limit(max_requests=settings.rate_limit_requests, window=settings.rate_limit_window, scope="read")
def list_clip_notes(request: Request, clip_id: str, me: str = Depends(get_current_user), db: Session = Depends(get_db)):
    clip = get_visible_clip(db, me, clip_id)
    return schemas.ClipNotes(clip_id=clip.id, note_ids=SqlClipNoteRepository(db).list_note_ids(clip.id))

# Add note to clip
@app.post("/clips/{clip_id}/notes", status_code=204)
@rate_limit(max_requests=settings.rate_limit_write_requests, window=settings.rate_limit_window, scope="write")
def add_clip_note(request: Request, clip_id: str, body: schemas.ClipNoteAdd, me: str = Depends(get_current_user),
                  db: Session = Depends(get_db), service: ClipService = Depends(get_clip_service)):
    # Ownership is reported before a missing note
    if SqlClipRepository(db).find_one_by(id=clip_id, user_id=me) is None:
        raise NoSuchClipError()
    if SqlNoteRepository(db).find_one_by(id=body.note_id) is None:
        return error_response(404, "NO_SUCH_NOTE", "No such note")

    with track("add_note"):
        service.add_note(me, clip_id, body.note_id)
    return Response(status_code=204)

# Remove note from clip
@app.delete("/clips/{clip_id}/notes/{note_id}", status_code=204)
@rate_limit(max_requests=settings.rate_limit_write_requests, window=settings.rate_limit_window, scope="write")
def remove_clip_note(request: Request, clip_id: str, note_id: str, me: str = Depends(get_current_user),
                     service: ClipService = Depends(get_clip_service)):
    with track("remove_note"):
        service.remove_note(me, clip_id, note_id)
    return Response(status_code=204)
