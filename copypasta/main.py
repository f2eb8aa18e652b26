from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import load_config
from .errors import ServiceError
from .routers import items, download
from .services.items import init_service
from .services.expiry import ExpirySweeper
from .services.maintenance import run_maintenance

import os
import logging

# ------------------------------------------------------------
# 設定
# ------------------------------------------------------------

swagger_enabled = os.getenv("SWAGGER_API_DOCS", "false").lower() in ["true", "1", "yes"]

config = load_config()

logging.basicConfig(
    level=config["logging"]["level"],
    format=":: %(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("copypasta")

ERROR_STATUS = {
    ServiceError.VALIDATION: 400,
    ServiceError.NOT_EDITABLE: 400,
    ServiceError.NOT_FOUND: 404,
    ServiceError.TOO_LARGE: 413,
    ServiceError.STORAGE: 500,
}

# ------------------------------------------------------------
# FastAPI
# ------------------------------------------------------------

base_path = os.getenv("BASE_PATH", "/").rstrip("/")

app = FastAPI(
    title="CopyPasta API",
    docs_url=None if not swagger_enabled else "/docs",
    redoc_url=None if not swagger_enabled else "/redoc",
    swagger_ui_parameters={
        "url": f"{base_path}/openapi.json",
    },
    servers=[
        {"url": base_path},
    ],
)

# ------------------------------------------------------------
# Middleware
# ------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------------------------------------------------------------
# Routers
# ------------------------------------------------------------

app.include_router(items.router)
app.include_router(download.router)

# ------------------------------------------------------------
# Errors
# ------------------------------------------------------------

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind} {exc.message}")
    return JSONResponse(status_code=status_code, content={"kind": exc.kind, "detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """スキーマ違反も validation-error として返す"""

    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {error['msg']}" if loc else error["msg"])

    return JSONResponse(
        status_code=ERROR_STATUS[ServiceError.VALIDATION],
        content={"kind": ServiceError.VALIDATION, "detail": "; ".join(messages)},
    )

# ------------------------------------------------------------
# Startup / Shutdown
# ------------------------------------------------------------

sweeper = None


@app.on_event("startup")
async def startup():

    global sweeper

    service = init_service(config)
    logger.info(f"📂 Data directory initialized: {service.store.data_dir}")

    report = run_maintenance(service.store)
    logger.info(
        f"Maintenance done: {report.pending} pending, {report.dangling} dangling, {report.orphans} orphaned"
    )

    sweeper = ExpirySweeper(
        service.clean_expired,
        interval_minutes=config["expiry"]["sweep_interval_minutes"],
    )
    sweeper.start()


@app.on_event("shutdown")
async def shutdown():

    if sweeper is not None:
        await sweeper.stop()

# ------------------------------------------------------------
# Health Check
# ------------------------------------------------------------

@app.head("/ping")
async def ping_head():
    return Response(status_code=200)
