"""
Configuration management for Scorebook.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = Path(__file__).parent
STATIC_DIR = PACKAGE_DIR / "static"

# Supabase (hosted document store + identity service)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# "memory" keeps everything in-process (local dev / tests)
BACKEND = os.getenv("SCOREBOOK_BACKEND", "supabase" if SUPABASE_URL else "memory")

SECRET_KEY = os.getenv("SCOREBOOK_SECRET_KEY", "dev-secret-key-change-me")

# Fixed teacher credentials, checked client-side before signing in to the
# pre-provisioned teacher account.
TEACHER_USER_NAME = os.getenv("SCOREBOOK_TEACHER_NAME", "teacher")
TEACHER_PASSWORD_CODE = os.getenv("SCOREBOOK_TEACHER_PASSCODE", "123456")
TEACHER_EMAIL = os.getenv("SCOREBOOK_TEACHER_EMAIL", "teacher@example.com")
TEACHER_USER_ID = "teacher_admin"

# Access tokens issued by the memory identity service (Supabase default)
TOKEN_TTL_SECONDS = int(os.getenv("SCOREBOOK_TOKEN_TTL", "3600"))

# Seconds between polls for Supabase-backed live subscriptions
POLL_INTERVAL = float(os.getenv("SCOREBOOK_POLL_INTERVAL", "2.0"))

# Parallel per-student fetches on the teacher roster / aggregate view
FETCH_WORKERS = int(os.getenv("SCOREBOOK_FETCH_WORKERS", "4"))

# Dashboards untouched this long are closed (sessions that never log out)
DASHBOARD_IDLE_SECONDS = float(os.getenv("SCOREBOOK_DASHBOARD_IDLE", "1800"))

# Server configuration
HOST = os.getenv("SCOREBOOK_HOST", "0.0.0.0")
PORT = int(os.getenv("SCOREBOOK_PORT", "3000"))
DEBUG = os.getenv("SCOREBOOK_DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("SCOREBOOK_LOG_LEVEL", "INFO")

# Grade enumerations
TESTS = ["MIDTERM", "FINAL", "APTITUDE", "CHALLENGE"]
SUBJECTS = ["MATH", "ENGLISH", "JAPANESE", "SCIENCE", "SOCIAL_STUDIES"]
TERMS = ["T1", "T2", "T3"]
GENDERS = ["male", "female", "other"]
FILTER_ALL = "all"

MIN_SCORE = 0
MAX_SCORE = 100
MIN_PASSWORD_LENGTH = 6
MIN_PASSCODE_LENGTH = 4


class Config:
    """Application configuration class."""

    def __init__(self):
        self.backend = BACKEND
        self.secret_key = SECRET_KEY
        self.supabase_url = SUPABASE_URL
        self.supabase_service_key = SUPABASE_SERVICE_KEY
        self.supabase_anon_key = SUPABASE_ANON_KEY
        self.teacher_user_name = TEACHER_USER_NAME
        self.teacher_password_code = TEACHER_PASSWORD_CODE
        self.teacher_email = TEACHER_EMAIL
        self.token_ttl_seconds = TOKEN_TTL_SECONDS
        self.poll_interval = POLL_INTERVAL
        self.fetch_workers = FETCH_WORKERS
        self.dashboard_idle_seconds = DASHBOARD_IDLE_SECONDS

    def to_dict(self):
        return {
            "backend": self.backend,
            "supabase_url": self.supabase_url,
            "teacher_user_name": self.teacher_user_name,
            "teacher_email": self.teacher_email,
            "token_ttl_seconds": self.token_ttl_seconds,
            "poll_interval": self.poll_interval,
            "fetch_workers": self.fetch_workers,
            "dashboard_idle_seconds": self.dashboard_idle_seconds,
        }

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)


# Global config instance
config = Config()
