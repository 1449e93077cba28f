"""
Environment configuration for the enrolment PDF filler.
All keys loaded from src/.env file, then the process environment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load settings from .env in same directory
load_dotenv(Path(__file__).parent / ".env")

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_MAX_OUTPUT_TOKENS = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", "8192"))

# Temporary PDF store (uploaded templates and filled documents)
PDF_CACHE_TTL_SECONDS = int(os.getenv("PDF_CACHE_TTL_SECONDS", "600"))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "25"))

# API server
PORT = int(os.getenv("PORT", "5000"))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
