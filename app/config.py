import os

from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# Loop notification poller
LOOP_POLL_INTERVAL_MS = int(os.getenv("LOOP_POLL_INTERVAL_MS", "250"))  # Default 250ms tick
LOOP_STORE_REFRESH_SECONDS = float(os.getenv("LOOP_STORE_REFRESH_SECONDS", "5"))
LOOP_ZERO_OFFSET_GRACE_MS = int(os.getenv("LOOP_ZERO_OFFSET_GRACE_MS", "1500"))
LOOP_NOTIFIER_ENABLED = os.getenv("LOOP_NOTIFIER_ENABLED", "true").lower() in ("1", "true", "yes")
LOOP_NOTIFICATION_TITLE = os.getenv("LOOP_NOTIFICATION_TITLE", "Loop timeline")
