from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from survey_tidy.exceptions import ConfigError


class AppSettings(BaseSettings):
    name: str = "survey-tidy"
    version: str = "1.0.0"


class PathSettings(BaseSettings):
    input_path: Path = Path("./data/input/responses.csv")
    output_path: Path = Path("./data/output/tidy.csv")
    diagnostics_path: Path = Path("./data/output/diagnostics.json")
    schema_path: Path = Path("./config/schema.yaml")


class InputSettings(BaseSettings):
    # The raw export has exactly these two columns.
    id_column: str = "id"
    encoded_column: str = "encoded"
    sheet_name: Optional[str] = None  # xlsx only; first sheet when unset


class ExportSettings(BaseSettings):
    format: str = "csv"  # csv | xlsx
    text_joiner: str = " | "  # flattening of text-response tuples for flat files


class LoggingSettings(BaseSettings):
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level: str = "INFO"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SURVEY_TIDY_", env_nested_delimiter="__", env_file=".env", extra="ignore"
    )
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    input: InputSettings = InputSettings()
    export: ExportSettings = ExportSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()
        if not path.exists():
            raise ConfigError(f"Settings file not found: {path}")

        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)


settings = Settings.load()
