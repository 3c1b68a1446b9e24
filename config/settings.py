"""
Configuration settings for the Mock Test Attempt Engine
All constants and configurable parameters in one place
"""

from pathlib import Path
from dataclasses import dataclass
import os

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("EXAM_DATA_DIR", BASE_DIR / "data"))
PAPERS_DIR = DATA_DIR / "papers"
ATTEMPTS_DIR = DATA_DIR / "attempts"
RAW_PDF_DIR = DATA_DIR / "raw_pdfs"

# Ensure directories exist
for dir_path in [DATA_DIR, PAPERS_DIR, ATTEMPTS_DIR, RAW_PDF_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)


@dataclass
class ExamConfig:
    """Configuration for timed attempts"""

    # Used when a paper does not declare its own duration
    default_duration_minutes: int = 120

    # Marking scheme applied to questions without their own
    correct_marks: float = 4.0
    incorrect_marks: float = -1.0
    unattempted_marks: float = 0.0

    # Timer display thresholds in seconds
    warning_seconds: int = 600
    critical_seconds: int = 300

    # Subjects below / above these accuracies are reported as weak / strong
    weak_accuracy: float = 50.0
    strong_accuracy: float = 70.0
    min_attempted_for_verdict: int = 3


@dataclass
class SubmissionConfig:
    """Retry policy for submitting a frozen attempt"""

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    backoff_factor: float = 2.0


@dataclass
class ApiConfig:
    """Remote test service used by the HTTP submission client"""

    base_url: str = os.environ.get("EXAM_API_URL", "http://localhost:8000/api/v1")
    timeout_seconds: float = 10.0


# Global config instances
EXAM_CONFIG = ExamConfig()
SUBMISSION_CONFIG = SubmissionConfig()
API_CONFIG = ApiConfig()
