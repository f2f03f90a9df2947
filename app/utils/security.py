"""
Security utilities and authentication
"""

from fastapi import HTTPException, Depends, Header, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import secrets
import time
from typing import Optional
from collections import defaultdict

from app.core.config import settings
from app.core.db import get_db
from app.models import Event, Usher, Vendor
from app.services.firebase_client import verify_planner_token
from app.services.repositories import StaffRepo

# Simple in-memory rate limiter
rate_limiter = defaultdict(list)

security = HTTPBearer()

def planner_id_for_token(token: str) -> Optional[str]:
    if settings.USE_FIREBASE:
        planner_id = verify_planner_token(token)
        if planner_id:
            return planner_id
    if secrets.compare_digest(token.encode("utf-8"), settings.ADMIN_TOKEN.encode("utf-8")):
        return settings.ADMIN_PLANNER_ID
    return None

def verify_planner(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """Resolve the bearer token to a planner id"""
    planner_id = planner_id_for_token(credentials.credentials)
    if planner_id:
        return planner_id
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid planner token"
    )

def verify_usher(
    x_usher_token: str = Header(...),
    db: Session = Depends(get_db)
) -> Usher:
    """Usher acting at the gate with their access token"""
    usher = StaffRepo.usher_by_token(db, x_usher_token)
    if not usher:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid usher token"
        )
    return usher

def verify_vendor(
    x_vendor_token: str = Header(...),
    db: Session = Depends(get_db)
) -> Vendor:
    """Vendor reading aggregates with their access token"""
    vendor = StaffRepo.vendor_by_token(db, x_vendor_token)
    if not vendor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid vendor token"
        )
    return vendor

def may_watch_event(db: Session, event: Event, token: Optional[str]) -> bool:
    """Live feed access: an usher of this event or the planner who owns it"""
    if not token:
        return False
    usher = StaffRepo.usher_by_token(db, token)
    if usher and usher.event_id == event.id:
        return True
    return planner_id_for_token(token) == event.planner_id

def mint_access_token() -> str:
    return secrets.token_urlsafe(24)

def rate_limit_check(client_ip: str, limit: int = None) -> bool:
    """Simple rate limiting by IP address"""
    if limit is None:
        limit = settings.RATE_LIMIT_PER_MINUTE
    
    current_time = time.time()
    minute_ago = current_time - 60
    
    # Clean old requests
    rate_limiter[client_ip] = [
        req_time for req_time in rate_limiter[client_ip] 
        if req_time > minute_ago
    ]
    
    # Check limit
    if len(rate_limiter[client_ip]) >= limit:
        return False
    
    # Add current request
    rate_limiter[client_ip].append(current_time)
    return True

def get_client_ip(request) -> str:
    """Extract client IP from request"""
    # Check for forwarded IP first (for reverse proxy setups)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    
    # Check for real IP header
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    
    # Fall back to direct client IP
    return request.client.host if request.client else "unknown"
