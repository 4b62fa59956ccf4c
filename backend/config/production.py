"""Production configuration."""
import os
from datetime import timedelta

from .base import BaseConfig

class ProductionConfig(BaseConfig):
    """Production configuration class."""
    
    # Basic Flask config
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production
    
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    
    # Redis
    REDIS_URL = os.getenv('REDIS_URL')
    
    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    
    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    
    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"
    
    # CORS
    CORS_ORIGINS = [o for o in os.getenv('CORS_ORIGINS', '*').split(',') if o]
    
    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = os.getenv('LOG_FILE', '/app/logs/app.log')
