from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    rest_time_set: int = Field(90, ge=0)
    rest_time_exercise: int = Field(120, ge=0)
    smart_rep_threshold: int = Field(3, ge=0)
    weight_unit: str = "kg"
    api_base_url: str = "http://localhost:8000"
    api_token: str | None = None
    request_timeout: float = Field(10.0, gt=0)
    language: str = "en"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
