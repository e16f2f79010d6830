import os


def _default_sqlite_url() -> str:
    data_dir = "/data"
    if os.path.isdir(data_dir):
        return f"sqlite:////{os.path.join(data_dir.lstrip('/'), 'organizer.db')}"
    return "sqlite:///organizer.db"


DATABASE_URL = os.getenv("DATABASE_URL", _default_sqlite_url())
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

INVITE_EXPIRY_DAYS = int(os.getenv("INVITE_EXPIRY_DAYS", "7"))
MAX_FAMILY_MEMBERS = int(os.getenv("MAX_FAMILY_MEMBERS", "10"))
# household size assumed when asking the model for shopping quantities
SHOPPING_FAMILY_SIZE = int(os.getenv("SHOPPING_FAMILY_SIZE", "3"))
