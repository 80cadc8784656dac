from datetime import time

from pydantic import Field
from pydantic_settings import BaseSettings

from teesheet.models.schemas import OverflowWindow, PeakWindow


def _default_peak_windows() -> list[PeakWindow]:
    return [
        PeakWindow(id="peak_a", start=time(5, 30), end=time(7, 30), max_groups=20, reserved=5),
        PeakWindow(id="peak_b", start=time(11, 30), end=time(12, 30), max_groups=15, reserved=2),
    ]


def _default_overflow_windows() -> list[OverflowWindow]:
    return [
        OverflowWindow(
            id="overflow_a",
            after_window_id="peak_a",
            start=time(7, 30),
            end=time(11, 0),
            weekdays_only=True,
        )
    ]


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./teesheet.db"

    timezone: str = "Asia/Taipei"

    course_start_time: time = time(5, 30)
    course_end_time: time = time(17, 0)
    slot_interval_minutes: int = 10
    turn_duration_minutes: int = 150
    peak_windows: list[PeakWindow] = Field(default_factory=_default_peak_windows)
    overflow_windows: list[OverflowWindow] = Field(default_factory=_default_overflow_windows)

    hold_duration_minutes: int = 120

    required_rate_tiers: list[str] = ["platinum", "gold", "team_friend", "guest"]
    required_caddy_ratios: list[str] = ["1:1", "1:2", "1:3", "1:4"]
    default_entertainment_tax: float = 0.05

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_channel: str = "sms"
    twilio_status_callback_url: str = ""

    scheduler_api_key: str = ""
    scheduler_service_account: str = ""

    # Required in X-Staff-API-Key for bookings that use reserved peak groups
    staff_api_key: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
