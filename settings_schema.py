from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from config import APP_VERSION


class SettingsSchema(BaseModel):
    default_duration_seconds: int = Field(60, gt=0)
    add_time_seconds: int = Field(30, gt=0)
    tick_interval_seconds: float = Field(1.0, gt=0)
    upcoming_count: int = Field(3, ge=0)
    timer_mode: Literal["server", "client"] = "server"
    notifications_enabled: bool = True
    notification_webhook_url: Optional[str | bool] = None
    theme: str = "dark"
    app_version: str = APP_VERSION


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
