"""
Runtime settings, read once from the process environment.
"""
import os

ADMIN_RECIPIENT = os.getenv("CREDITS_ADMIN_RECIPIENT", "admins")

APPEAL_REASON_MIN_LENGTH = int(os.getenv("CREDITS_APPEAL_REASON_MIN_LENGTH", "10"))

# 1-based; June
ACADEMIC_YEAR_START_MONTH = int(os.getenv("CREDITS_ACADEMIC_YEAR_START_MONTH", "6"))

YEAR_OPTIONS_COUNT = int(os.getenv("CREDITS_YEAR_OPTIONS_COUNT", "5"))

LOG_LEVEL = os.getenv("CREDITS_LOG_LEVEL", "INFO")

GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# InMemoryNotifier bounds
NOTIFICATION_DEDUPE_WINDOW = int(os.getenv("CREDITS_NOTIFICATION_DEDUPE_WINDOW", "10000"))
INBOX_LIMIT = int(os.getenv("CREDITS_INBOX_LIMIT", "500"))
