"""
Guest Admission & Seat Allocation Engine - FastAPI Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base
from app.core.errors import AdmissionError
from app.api import routes_admin, routes_guest, routes_public, routes_usher, ws
from app.utils.responses import admission_error_handler

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready ({engine.url.get_backend_name()}); "
                f"planner auth via {'Firebase' if settings.USE_FIREBASE else 'admin token'}")
    yield
    logger.info("Application shutdown")

app = FastAPI(
    title="Guest Admission & Seat Allocation Engine",
    description="Invites, RSVPs, seating and gate check-in for planned events",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Domain errors render as the ErrorResponse envelope
app.add_exception_handler(AdmissionError, admission_error_handler)

app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_guest.router, prefix="/guest", tags=["guest"])
app.include_router(routes_usher.router, prefix="/usher", tags=["usher"])
app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

@app.get("/")
async def root():
    """Where the clients should go"""
    return {
        "name": app.title,
        "version": app.version,
        "docs": "/docs",
        "rsvp": "/guest/invite/{public_code}",
        "gate": "/usher/checkin",
        "live": "/ws/events/{public_code}",
    }

# Run with Uvicorn directly; under Gunicorn use `uvicorn.workers.UvicornWorker`.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
