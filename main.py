import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from rescue_hub.shared.db import Database
from rescue_hub.shared.errors import AppError
from rescue_hub.shared.response import success_response, error_response, app_error_response
from rescue_hub.shared.schema import create_tables
from rescue_hub.shared.seed import seed_data
from rescue_hub.notifications.utils import PushClient
from rescue_hub.auth.router import router as auth_router
from rescue_hub.emergencies.router import router as emergencies_router
from rescue_hub.dashboard.router import router as dashboard_router
from rescue_hub.admin.router import router as admin_router
from rescue_hub.notifications.router import router as notifications_router

load_dotenv()

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the database pool and push client, prepare tables, and tear both down on shutdown"""
    db = Database.from_env()
    await db.connect()
    push_client = PushClient(os.getenv("FIREBASE_CREDENTIALS"))
    push_client.init()
    app.state.db = db
    app.state.push_client = push_client
    try:
        await create_tables(db)
        if os.getenv("SEED_DATA", "").lower() in ("1", "true", "yes"):
            await seed_data(db)
        yield
    finally:
        push_client.close()
        await db.close()


app = FastAPI(title="Rescue Hub API", version="1.0.0", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/api/auth")
app.include_router(emergencies_router, prefix="/api/emergencies")
app.include_router(dashboard_router, prefix="/api/dashboard")
app.include_router(admin_router, prefix="/api/admin")
app.include_router(notifications_router, prefix="/api/notifications")


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return app_error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return error_response(message, 400)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response("Internal server error", 500)


@app.get("/")
async def health():
    return success_response({"version": app.version, "status": "OK"}, "Rescue Hub API is running")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
