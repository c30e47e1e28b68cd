import os
from pydantic import BaseModel


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "local")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./treetracker.db")
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173")

    # Keycloak: public client for password login, admin client for registration
    keycloak_base_url: str = os.getenv("KEYCLOAK_BASE_URL", "http://localhost:8080")
    keycloak_realm: str = os.getenv("KEYCLOAK_REALM", "treetracker")
    keycloak_client_id: str = os.getenv("KEYCLOAK_CLIENT_ID", "treetracker-web")
    keycloak_admin_client_id: str = os.getenv("KEYCLOAK_ADMIN_CLIENT_ID", "admin-cli")
    keycloak_admin_username: str = os.getenv("KEYCLOAK_ADMIN_USERNAME", "")
    keycloak_admin_password: str = os.getenv("KEYCLOAK_ADMIN_PASSWORD", "")
    keycloak_timeout_seconds: float = float(os.getenv("KEYCLOAK_TIMEOUT_SECONDS", "10"))

    # Geolocation acquisition (passed to navigator.geolocation.getCurrentPosition)
    location_timeout_ms: int = int(os.getenv("LOCATION_TIMEOUT_MS", "10000"))
    location_high_accuracy: bool = _env_bool("LOCATION_HIGH_ACCURACY", "true")
    location_max_age_ms: int = int(os.getenv("LOCATION_MAX_AGE_MS", "0"))
    location_clock_skew_seconds: float = float(os.getenv("LOCATION_CLOCK_SKEW_SECONDS", "5"))
    # Extra server-side wait on top of the browser timeout: the browser starts its clock only once it has the request id
    location_report_grace_ms: int = int(os.getenv("LOCATION_REPORT_GRACE_MS", "5000"))

    upload_backend: str = os.getenv("UPLOAD_BACKEND", "log")  # "log" | "database"
    max_upload_mb: int = int(os.getenv("MAX_UPLOAD_MB", "20"))

settings = Settings()
