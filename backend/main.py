import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import account, admin_users, notifications, requests
from app.core.config import settings
from app.db.database import check_db_connection

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Role and authorization request engine for the community event archive",
    version="0.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(requests.router)
app.include_router(notifications.router)
app.include_router(admin_users.router)
app.include_router(account.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": "ok",
        "message": settings.PROJECT_NAME,
        "version": "0.1.0"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    db_ok = await check_db_connection()
    return {"status": "healthy" if db_ok else "degraded", "database": db_ok}
