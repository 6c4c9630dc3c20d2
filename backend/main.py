from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from database import get_db

# ENV
from config.env import ENV, LOG_LEVEL, CORS_ALLOWED_ORIGINS, validate_production_env

# ROUTES
from routes.auth import router as auth_router
from routes.users import router as users_router
from routes.profiles import router as profiles_router
from routes.services import router as services_router
from routes.orders import router as orders_router
from routes.messages import router as messages_router
from routes.payments import router as payments_router
from routes.payouts import router as payouts_router
from routes.webhooks import router as webhook_router
from routes.uploads import router as uploads_router
from routes.admin import router as admin_router

from utils.indexes import ensure_indexes

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

validate_production_env()
logger.info("ENV: %s", ENV)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(get_db())
    yield


app = FastAPI(
    title="TuneHire API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ERROR HANDLERS
# -----------------------------

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error for %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(profiles_router, prefix="/api")
app.include_router(services_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(payouts_router, prefix="/api")
app.include_router(webhook_router, prefix="/api")
app.include_router(uploads_router, prefix="/api")
app.include_router(admin_router, prefix="/api")

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():

    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db():
    db = get_db()
    await db.command("ping")
    return {"status": "mongodb connected"}
