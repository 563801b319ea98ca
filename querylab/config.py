import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

ROOT_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = Path("settings.json")

# settings field -> environment variable
ENV_VARS = {
    "mongodb_uri": "MONGODB_URI",
    "mongodb_username": "MONGODB_USERNAME",
    "mongodb_password": "MONGODB_PASSWORD",
    "mongodb_location": "MONGODB_LOCATION",
    "mongodb_database": "MONGODB_DATABASE",
    "host": "HOST",
    "port": "PORT",
    "log_level": "LOG_LEVEL",
    "search_lab_build": "SEARCH_LAB_BUILD",
    "sql_lab_build": "SQL_LAB_BUILD",
    "query_timeout_ms": "QUERYLAB_QUERY_TIMEOUT_MS",
}


class Settings(BaseModel):
    mongodb_uri: Optional[str] = None
    mongodb_username: Optional[str] = None
    mongodb_password: Optional[str] = None
    mongodb_location: Optional[str] = None
    mongodb_database: str = "library_clean"
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    search_lab_build: Path = ROOT_DIR / "search-lab-interactive" / "build"
    sql_lab_build: Path = ROOT_DIR / "sql-to-query-api-lab-interactive" / "build"
    query_timeout_ms: Optional[int] = None

    def mongo_uri(self) -> Optional[str]:
        """Explicit URI, else an Atlas SRV URI from credentials, else None."""
        if self.mongodb_uri:
            return self.mongodb_uri
        if not (self.mongodb_username and self.mongodb_password and self.mongodb_location):
            return None
        return (f"mongodb+srv://{quote_plus(self.mongodb_username)}:"
                f"{quote_plus(self.mongodb_password)}@{self.mongodb_location}")


def _read_settings_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse {path}: {e}")
    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must contain a JSON object")
    return data


def load_settings(settings_path: Optional[Path] = None, environ=None) -> Settings:
    """settings.json first, environment variables (and .env) on top."""
    if environ is None:
        load_dotenv()
        environ = os.environ
    path = Path(settings_path or environ.get("QUERYLAB_SETTINGS") or SETTINGS_PATH)
    values = _read_settings_file(path)
    for field, var in ENV_VARS.items():
        value = environ.get(var)
        if value not in (None, ""):
            values[field] = value
    try:
        return Settings(**values)
    except ValidationError as e:
        raise RuntimeError(f"Invalid configuration: {e}")
