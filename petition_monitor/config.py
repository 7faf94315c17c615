"""Application configuration."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream ECI sources
    counter_url: str = os.getenv(
        "COUNTER_URL", "https://eci.ec.europa.eu/045/public/api/report/progression"
    )
    description_url: str = os.getenv(
        "DESCRIPTION_URL",
        "https://eci.ec.europa.eu/045/public/api/initiative/description",
    )
    counter_timeout: float = float(os.getenv("COUNTER_TIMEOUT", "10.0"))
    description_timeout: float = float(os.getenv("DESCRIPTION_TIMEOUT", "5.0"))

    # Store ("github" or "sqlite")
    store_backend: str = os.getenv("STORE_BACKEND", "github")
    github_token: str = os.getenv("GITHUB_TOKEN", "")
    repo_owner: str = os.getenv("REPO_OWNER", "")
    repo_name: str = os.getenv("REPO_NAME", "")
    github_branch: str = os.getenv("GITHUB_BRANCH", "")
    github_api_url: str = os.getenv("GITHUB_API_URL", "https://api.github.com")
    store_timeout: float = float(os.getenv("STORE_TIMEOUT", "15.0"))
    sqlite_path: str = os.getenv("SQLITE_PATH", "data/history.db")
    latest_blob: str = os.getenv("LATEST_BLOB", "eci_data_latest.json")
    history_blob: str = os.getenv("HISTORY_BLOB", "eci_data_history.json")
    history_retention: int = int(os.getenv("HISTORY_RETENTION", "10000"))

    # Analytics
    observed_window_days: int = int(os.getenv("OBSERVED_WINDOW_DAYS", "7"))

    # Scheduler
    run_interval_seconds: int = int(
        os.getenv("RUN_INTERVAL_SECONDS", "300")
    )  # 5 minutes
    initial_run_delay: float = float(os.getenv("INITIAL_RUN_DELAY", "3"))
    scheduler_enabled: bool = os.getenv("SCHEDULER_ENABLED", "true").lower() in (
        "1",
        "true",
        "yes",
    )

    # Server
    server_host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port: int = int(os.getenv("SERVER_PORT", "8000"))

    # Dashboard
    dashboard_output_dir: str = os.getenv("DASHBOARD_OUTPUT_DIR", "static/images")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False

    @property
    def github_configured(self) -> bool:
        """True when every credential the GitHub store needs is present."""
        return bool(self.github_token and self.repo_owner and self.repo_name)


settings = Settings()
