# env vars + constants
import os

NODE_ID = os.getenv("NODE_ID", "store1")
PORT = int(os.getenv("PORT", "3001"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATA_DIR = os.getenv("CONTENTSTORE_DATA_DIR", os.path.join(os.getcwd(), "data"))

AUTOSAVE_INTERVAL = float(os.getenv("AUTOSAVE_INTERVAL", "30.0"))
DEFAULT_POLL_DURATION_HOURS = float(os.getenv("DEFAULT_POLL_DURATION_HOURS", "24"))

COLLECTIONS = ("posts", "profiles", "reactions", "comments", "polls")
