"""
Configuration settings for the application
"""

import os
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""
    
    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./admission.db")
    
    # Planner auth (Firebase ID tokens, or the static admin token in development)
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: str | None = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: str | None = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: str | None = os.getenv("FIREBASE_CREDENTIALS_B64")
    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "admin_token_123")
    ADMIN_PLANNER_ID: str = os.getenv("ADMIN_PLANNER_ID", "local-planner")
    
    # Application
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")
    INVITE_TOKEN_BYTES: int = 16
    DEFAULT_TABLE_CAPACITY: int = 10
    
    # WhatsApp Cloud API
    WHATSAPP_API_URL: str = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v19.0")
    WHATSAPP_ACCESS_TOKEN: str | None = os.getenv("WHATSAPP_ACCESS_TOKEN")
    WHATSAPP_PHONE_NUMBER_ID: str | None = os.getenv("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_COUNTRY_CODE: str = os.getenv("DEFAULT_COUNTRY_CODE", "234")
    
    # Reserved seat release job
    RELEASE_CHECK_INTERVAL_SECONDS: int = 60
    
    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
        "http://localhost:8000",
    ]
    
    # File limits
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    
    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 30
    
    class Config:
        env_file = ".env"

settings = Settings()
