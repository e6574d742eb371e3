import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import DuplicateKeyError

from config import settings, configure_logging
from database import client, ensure_indexes
from routers.auth import router as auth_router
from routers.admin import router as admin_router
from routers.donors import router as donor_router, admin_router as donors_router
from routers.inventory import router as inventory_router
from routers.donations import router as donations_router
from routers.requests import router as requests_router
from routers.notifications import router as notifications_router
from routers.appointments import router as appointments_router
from routers.medical_reports import router as medical_reports_router
from routers.uploads import router as uploads_router
from routers.dashboard import router as dashboard_router

configure_logging()
logger = logging.getLogger(__name__)

settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()
    logger.info("Blood Bank Management API started")
    yield
    client.close()


app = FastAPI(title="Blood Bank Management API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %s %.1fms",
        request.method, request.url.path, response.status_code, (time.perf_counter() - started) * 1000
    )
    return response


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate record"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router)
api_router.include_router(admin_router)
api_router.include_router(donor_router)
api_router.include_router(donors_router)
api_router.include_router(inventory_router)
api_router.include_router(donations_router)
api_router.include_router(requests_router)
api_router.include_router(notifications_router)
api_router.include_router(appointments_router)
api_router.include_router(medical_reports_router)
api_router.include_router(uploads_router)
api_router.include_router(dashboard_router)

app.include_router(api_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "Blood Bank Management API"}


app.mount("/uploads", StaticFiles(directory=str(settings.UPLOAD_DIR)), name="uploads")
