import os
import logging
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    courses_dir: str = "courses"
    courses_url: Optional[str] = None  # serve course documents over HTTP instead of disk
    progress_dir: Optional[str] = None  # in-memory progress when unset
    backend: str = "memory"  # "memory" or "firebase"
    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    log_level: str = "INFO"
    log_file: str = "lms.log"
    notification_seconds: float = 4.0
    max_quiz_questions: int = 20  # answer slots on the quiz page

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a .env file if present)"""
        values = {
            "courses_dir": os.getenv("LMS_COURSES_DIR"),
            "courses_url": os.getenv("LMS_COURSES_URL"),
            "progress_dir": os.getenv("LMS_PROGRESS_DIR"),
            "backend": os.getenv("LMS_BACKEND"),
            "firebase_api_key": os.getenv("FIREBASE_API_KEY"),
            "firebase_project_id": os.getenv("FIREBASE_PROJECT_ID"),
            "log_level": os.getenv("LMS_LOG_LEVEL"),
            "log_file": os.getenv("LMS_LOG_FILE"),
            "notification_seconds": os.getenv("LMS_NOTIFICATION_SECONDS"),
            "max_quiz_questions": os.getenv("LMS_MAX_QUIZ_QUESTIONS"),
        }
        settings = cls(**{k: v for k, v in values.items() if v})
        if settings.backend == "firebase" and not (settings.firebase_api_key and settings.firebase_project_id):
            raise ValueError("FIREBASE_API_KEY and FIREBASE_PROJECT_ID are required for the firebase backend")
        logger.debug(f"Loaded settings: backend={settings.backend}, courses_dir={settings.courses_dir}")
        return settings
