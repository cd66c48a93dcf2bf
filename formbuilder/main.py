import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from . import __version__
from .api.endpoints import collaboration, forms, images, responses, templates, users
from .core import config
from .core.exceptions import ConflictError, DependencyFailure, FormBuilderError
from .core.logging_config import setup_logging
from .database import create_db_and_tables, engine
from .services.collaboration import hub

logger = setup_logging()


# --- Lifecycle Events ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Anwendung startet...")
    await create_db_and_tables()
    yield
    logger.info("Anwendung fährt herunter...")
    await hub.close()
    await engine.dispose()


# --- FastAPI App Instanz ---
app = FastAPI(title="Form Builder Backend", version=__version__, lifespan=lifespan)

# --- CORS Middleware ---
origins = []
if config.BACKEND_ALLOWED_ORIGINS:
    origins = [o.strip() for o in config.BACKEND_ALLOWED_ORIGINS.split(",") if o.strip()]
    logger.info("CORS: Erlaubte Origins aus Umgebungsvariablen: %s", origins)
if not origins:
    origins = config.FALLBACK_ORIGINS
    logger.info("CORS: Es werden die Fallback-Origins verwendet: %s", origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Hochgeladene Bilder unter STATIC_FILES_ROUTE ausliefern
upload_dir = Path(config.UPLOAD_DIR)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(config.STATIC_FILES_ROUTE, StaticFiles(directory=upload_dir), name="static_images")


# --- Fehlerbehandlung ---
@app.exception_handler(FormBuilderError)
async def formbuilder_error_handler(request: Request, exc: FormBuilderError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # Verletzte Unique-Constraints, z.B. zwei gleichzeitige Veröffentlichungen
    logger.warning("Integrity conflict for %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content=ConflictError("The resource was changed concurrently. Please retry.").to_dict(),
    )


@app.exception_handler(PoolTimeoutError)
@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: Exception):
    logger.error("Database unavailable for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503, content=DependencyFailure("Database unavailable").to_dict()
    )


# --- Router ---
api_router = APIRouter(prefix="/api/v1")
api_router.include_router(users.router)
api_router.include_router(forms.router)
api_router.include_router(responses.router)
api_router.include_router(templates.router)
api_router.include_router(templates.categories_router)
api_router.include_router(images.router)
api_router.include_router(collaboration.router)
app.include_router(api_router)


@app.get("/")
async def read_root():
    return {"message": "Willkommen zum Form Builder Backend!"}
