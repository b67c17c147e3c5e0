"""
Agenda Bot — Entry Point.

`python main.py` starts polling and the once-a-minute reminder tick.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# getUpdates is logged by httpx on every poll
logging.getLogger("httpx").setLevel(logging.WARNING)

from agendabot.bot.telegram_bot import main

if __name__ == "__main__":
    main()
