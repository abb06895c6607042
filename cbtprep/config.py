import os
from pathlib import Path
from dotenv import load_dotenv

# .env lives next to the package, so loading works from any working directory
load_dotenv(Path(__file__).with_name(".env"))


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw and raw.strip() else default


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw and raw.strip() else default


def _list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "")


def database_url() -> str:
    """DATABASE_URL, or a SQLite file inside the package when it is not set."""
    if DATABASE_URL and DATABASE_URL.strip():
        return DATABASE_URL.strip()
    return f"sqlite:///{Path(__file__).with_name('app.db')}"


# --- Question bank (ALOC) ---
ALOC_BASE_URL = os.getenv("ALOC_BASE_URL", "https://questions.aloc.com.ng/api/v2")
ALOC_ACCESS_TOKEN = os.getenv("ALOC_ACCESS_TOKEN", "")
ALOC_TIMEOUT = _float("ALOC_TIMEOUT", 8.0)
ALOC_MIN_INTERVAL = _float("ALOC_MIN_INTERVAL", 0.3)

# --- CBT exam ---
SUBJECTS_PER_SESSION = _int("SUBJECTS_PER_SESSION", 4)
QUESTIONS_PER_SUBJECT = _int("QUESTIONS_PER_SUBJECT", 20)
CBT_TIME_ALLOWED = _int("CBT_TIME_ALLOWED", 7200)  # seconds
DEFAULT_EXAM_TYPE = os.getenv("DEFAULT_EXAM_TYPE", "utme")

# Codes handed out by the admin outside the payment flow
UNLOCK_CODES = _list("UNLOCK_CODES", "08148800,09019180,08039890")

# --- Payments (Paystack) ---
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
CBT_PRICE_KOBO = _int("CBT_PRICE_KOBO", 300000)

# --- AI explanations (OpenAI-compatible chat completions) ---
AI_API_URL = os.getenv("AI_API_URL", "https://api.groq.com/openai/v1/chat/completions")
AI_API_KEY = os.getenv("AI_API_KEY", "")
AI_MODEL = os.getenv("AI_MODEL", "llama-3.1-8b-instant")
AI_TIMEOUT = _float("AI_TIMEOUT", 20.0)

# --- Logging ---
LOG_DIR = os.getenv("LOG_DIR", "log")
LOG_FILE = os.getenv("LOG_FILE", "cbtprep.log")
