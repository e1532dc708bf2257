from datetime import datetime
import os

import pytz
from dotenv import load_dotenv

load_dotenv()

# All audit timestamps are stored in the clinic's local timezone.
APP_TIMEZONE = pytz.timezone(os.getenv("APP_TIMEZONE", "Asia/Kolkata"))


def now_local() -> datetime:
    return datetime.now(APP_TIMEZONE)
