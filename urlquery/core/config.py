from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "urlquery"
    LOG_LEVEL: str = "INFO"

    # Reject filters and sort keys on fields that have no FieldSpec.
    QUERY_VALIDATE_FIELDS: bool = False
    # Untyped values that match nothing else stay strings; False turns them into no_match errors.
    QUERY_STRING_FALLBACK: bool = True
    QUERY_SORT_FIELDS: str = ""

    @property
    def sort_fields_list(self) -> List[str]:
        return [f.strip() for f in self.QUERY_SORT_FIELDS.split(",") if f.strip()]

settings = Settings()
