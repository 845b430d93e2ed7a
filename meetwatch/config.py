"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"
MOCK_MAILBOX_PATH = DATA_DIR / "mock_mailbox.json"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'meetwatch.sqlite'}")

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "app.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# OpenTelemetry
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "false").lower() == "true"
OTLP_TRACES_ENDPOINT = os.getenv("OTLP_TRACES_ENDPOINT", "http://localhost:4318/v1/traces")
OTLP_API_KEY = os.getenv("OTLP_API_KEY", "")
SERVICE_NAME = os.getenv("SERVICE_NAME", "meetwatch")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "development")

# Webhook (Pub/Sub push) and cron authentication
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "8000"))
WEBHOOK_TOKEN = os.getenv("WEBHOOK_TOKEN", "")
CRON_SECRET = os.getenv("CRON_SECRET", "")
API_TOKEN = os.getenv("API_TOKEN", "")

# Mail provider: "gmail" (REST API) or "mock" (in-memory, loaded from MOCK_MAILBOX_PATH)
MAIL_PROVIDER = os.getenv("MAIL_PROVIDER", "gmail").lower()
CALENDAR_PROVIDER = os.getenv("CALENDAR_PROVIDER", "google").lower()

# Gmail watch
PUBSUB_TOPIC = os.getenv("PUBSUB_TOPIC", "")
GMAIL_ACCESS_TOKEN = os.getenv("GMAIL_ACCESS_TOKEN", "")
GMAIL_HTTP_TIMEOUT_SECONDS = float(os.getenv("GMAIL_HTTP_TIMEOUT_SECONDS", "30"))
LEASE_RENEWAL_WINDOW_HOURS = int(os.getenv("LEASE_RENEWAL_WINDOW_HOURS", "24"))

# Notification ledger: Pub/Sub redelivers for at most a day
NOTIFICATION_RETENTION_HOURS = int(os.getenv("NOTIFICATION_RETENTION_HOURS", "24"))

# Sync bounds
FULL_SYNC_DAYS = int(os.getenv("FULL_SYNC_DAYS", "7"))
FULL_SYNC_MAX_MESSAGES = int(os.getenv("FULL_SYNC_MAX_MESSAGES", "500"))
SYNC_PAGE_SIZE = int(os.getenv("SYNC_PAGE_SIZE", "100"))

# Inference
INFERENCE_MODEL = os.getenv("INFERENCE_MODEL", "groq:llama-3.1-8b-instant")
INFERENCE_TEMPERATURE = float(os.getenv("INFERENCE_TEMPERATURE", "0.2"))
INFERENCE_MAX_TOKENS = int(os.getenv("INFERENCE_MAX_TOKENS", "1500"))
INFERENCE_TIMEOUT_SECONDS = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "30"))
INFERENCE_MAX_RETRIES = int(os.getenv("INFERENCE_MAX_RETRIES", "3"))
INFERENCE_RETRY_BASE_DELAY = float(os.getenv("INFERENCE_RETRY_BASE_DELAY", "1.0"))

# Calendar parser / extractor
THREAD_MAX_MESSAGES = int(os.getenv("THREAD_MAX_MESSAGES", "10"))
THREAD_MAX_BODY_CHARS = int(os.getenv("THREAD_MAX_BODY_CHARS", "4000"))
MIN_SUGGESTION_CONFIDENCE = float(os.getenv("MIN_SUGGESTION_CONFIDENCE", "0.4"))
EXTRACTION_CONCURRENCY = int(os.getenv("EXTRACTION_CONCURRENCY", "3"))

# Extraction queue (bounded queue + worker pool in the webhook server)
EXTRACTION_QUEUE_MAX = int(os.getenv("EXTRACTION_QUEUE_MAX", "200"))
EXTRACTION_WORKER_COUNT = int(os.getenv("EXTRACTION_WORKER_COUNT", "2"))

# Google Calendar
CALENDAR_ID = os.getenv("CALENDAR_ID", "primary")
