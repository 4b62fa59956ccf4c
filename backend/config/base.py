"""Settings shared by every environment."""
import os
from datetime import timedelta

class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    
    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'
    
    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]
    
    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    
    # Real-time broadcast
    REDIS_URL = os.environ.get('REDIS_URL')
    BROADCAST_CHANNEL = os.environ.get('BROADCAST_CHANNEL', 'edutend:events')
    
    # Attendance sessions
    SESSION_MIN_DURATION_MINUTES = 1
    SESSION_MAX_DURATION_MINUTES = 480
    QR_ERROR_CORRECTION = 'M'
    QR_BOX_SIZE = 10
    QR_BORDER = 1
    
    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100
    
    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
