"""
Environment configuration (backend/.env is loaded when present)
"""

import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'catalog')

# Default allowed origins for local development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

cors_origins_env = os.environ.get('CORS_ORIGINS', '')
if cors_origins_env:
    CORS_ORIGINS = [origin.strip() for origin in cors_origins_env.split(',') if origin.strip()]
else:
    CORS_ORIGINS = DEFAULT_CORS_ORIGINS

PROPERTY_DEFINITION_CACHE_TTL = float(os.environ.get('PROPERTY_DEFINITION_CACHE_TTL', '300'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
