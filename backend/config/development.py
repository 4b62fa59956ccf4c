"""Development configuration."""
import os

from .base import BaseConfig

class DevelopmentConfig(BaseConfig):
    """Development configuration class."""
    
    DEBUG = True
    TESTING = False
    
    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///edutend_dev.db'
    
    # Redis is optional in development; events stay in-process without it
    REDIS_URL = os.environ.get('REDIS_URL') or None
    
    LOG_LEVEL = 'DEBUG'
