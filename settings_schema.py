from typing import Literal

from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    theme_mode: Literal["system", "light", "dark"] = "system"
    show_calories: bool = True
    show_duration: bool = True
    onboarding_completed: bool = False
    export_dir: str = "."
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
