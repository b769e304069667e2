from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"
    database_url: str = "sqlite:///./approvalflow.db"
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # roles pre-filled by templates so a fresh graph validates cleanly
    template_approver_role: str = "manager"
    template_fulfiller_role: str = "operations"
    template_column_spacing: float = 250.0
    template_row_spacing: float = 150.0

    # persistence endpoint used by the editor-side store client
    store_base_url: str = "http://localhost:8000"
    store_timeout_seconds: float = 10.0


settings = Settings()  # reads from env
