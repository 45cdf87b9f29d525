# config.py

import os

BOT_TOKEN = os.getenv("BOT_TOKEN", "")
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/app.db")

# Comma separated Telegram user ids allowed to edit rosters and overrides
AUTHORIZED_USER_IDS = {
    int(x) for x in os.getenv("AUTHORIZED_USER_IDS", "").split(",") if x.strip().lstrip("-").isdigit()
}

# Zone used for a fresh database, the stored schedule rule wins afterwards
TIMEZONE = os.getenv("TIMEZONE", "America/Chicago")

ADMIN_SECRET = os.getenv("ADMIN_SECRET", "")
WEB_API_PORT = int(os.getenv("WEB_API_PORT", "8081"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_ADVANCE_CHECK_MINUTES = int(os.getenv("AUTO_ADVANCE_CHECK_MINUTES", "5"))
