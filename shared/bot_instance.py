from telegram import Bot
from config import BOT_TOKEN

_bot_instance = None


def get_bot() -> Bot:
    global _bot_instance
    if _bot_instance is None:
        if not BOT_TOKEN:
            raise RuntimeError("BOT_TOKEN is not set")
        _bot_instance = Bot(token=BOT_TOKEN)
    return _bot_instance


def set_bot(bot: Bot):
    """Shares the Application's bot so loops and commands use one client."""
    global _bot_instance
    _bot_instance = bot
