from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from psycopg import errors as pg_errors
import time
import uuid
from datetime import datetime, timezone
from .routers.inventory import router as inventory_router
from .routers.assignments import router as assignments_router
from .routers.sales import router as sales_router
from .routers.credit import router as credit_router
from .routers.items import router as items_router
from .routers.item_categories import router as item_categories_router
from .routers.users import router as users_router
from .routers.leads import router as leads_router
from .routers.audit import router as audit_router
from .routers.dashboard import router as dashboard_router
from .config import settings
from .db import Database
from .jsonlog import json_log
from .outcomes import INVALID_DATA

app = FastAPI(title="Stock Ledger Back Office API", version=settings.api_version)
STARTED_AT_UTC = datetime.now(timezone.utc)

PHONE_FIELDS = {"customer_phone"}


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def validation_error_body(errors) -> dict:
    # Form-style contract: one flat message, with the phone field called out on its own.
    for err in errors or []:
        loc = err.get("loc") or ()
        if err.get("type") == "string_pattern_mismatch" and any(part in PHONE_FIELDS for part in loc):
            return {"error": "Invalid phone number format."}
    return {"error": INVALID_DATA}


# Map common DB constraint errors to 4xx so clients get actionable responses
# instead of generic 500s (write handlers already fold these into {"error": ...}).
@app.exception_handler(pg_errors.ForeignKeyViolation)
def _foreign_key_violation(_req: Request, exc: Exception):
    content = {"error": "invalid reference"}
    if settings.env in {"local", "dev"}:
        content["detail"] = str(exc)
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(pg_errors.UniqueViolation)
def _unique_violation(_req: Request, exc: Exception):
    content = {"error": "conflict"}
    if settings.env in {"local", "dev"}:
        content["detail"] = str(exc)
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: Exception):
    errors = exc.errors() if hasattr(exc, "errors") else []
    content = validation_error_body(errors)
    if settings.env in {"local", "dev"}:
        content["errors"] = errors
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    rid = _current_request_id(req)
    json_log(
        "error",
        "http.request.unhandled",
        request_id=rid,
        method=req.method,
        path=req.url.path,
        error=str(exc),
    )
    content = {"error": "internal error", "request_id": rid}
    if settings.env in {"local", "dev"}:
        content["detail"] = str(exc)
    return JSONResponse(status_code=500, content=content)

# Correlation id + basic structured request logging.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()
    path = request.url.path
    method = request.method
    client_ip = (request.client.host if request.client else None)

    try:
        response = await call_next(request)
    except Exception as exc:
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "error",
            "http.request.error",
            request_id=rid,
            method=method,
            path=path,
            client_ip=client_ip,
            duration_ms=dur_ms,
            error=str(exc),
        )
        raise

    response.headers["X-Request-Id"] = rid
    if path != "/health":
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "info",
            "http.request",
            request_id=rid,
            method=method,
            path=path,
            status_code=response.status_code,
            client_ip=client_ip,
            duration_ms=dur_ms,
        )
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(inventory_router)
app.include_router(assignments_router)
app.include_router(sales_router)
app.include_router(credit_router)
app.include_router(items_router)
app.include_router(item_categories_router)
app.include_router(users_router)
app.include_router(leads_router)
app.include_router(audit_router)
app.include_router(dashboard_router)

@app.on_event("startup")
def _startup():
    db = Database.from_settings(settings)
    db.open()
    app.state.db = db
    try:
        with db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 AS ok")
                cur.fetchone()
        json_log("info", "startup.db_connected", env=settings.env, version=settings.api_version)
    except Exception as exc:
        json_log("warning", "startup.db_check_failed", env=settings.env, error=str(exc))

@app.on_event("shutdown")
def _shutdown():
    db = getattr(app.state, "db", None)
    if db is not None:
        db.close()


def _db_health(db):
    try:
        with db.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 AS ok")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, str(exc)


@app.get("/health")
def health(req: Request):
    request_id = _current_request_id(req)
    ok, err = _db_health(req.app.state.db)
    if not ok:
        content = {
            "status": "degraded",
            "env": settings.env,
            "db": "down",
            "version": settings.api_version,
            "started_at": STARTED_AT_UTC.isoformat(),
            "request_id": request_id,
        }
        if settings.env in {"local", "dev"}:
            content["error"] = err
        return JSONResponse(status_code=503, content=content)
    return {
        "status": "ok",
        "env": settings.env,
        "db": "ok",
        "version": settings.api_version,
        "started_at": STARTED_AT_UTC.isoformat(),
        "request_id": request_id,
    }
