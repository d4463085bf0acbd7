"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


DEVELOPMENT_ENVIRONMENTS = ("development", "dev", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "quickdesk_dev"

    # Identity provider (Firebase ID tokens)
    identity_project_id: str = ""
    identity_jwks_uri: str = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    identity_issuer_prefix: str = "https://securetoken.google.com/"

    # Attachments
    attachments_max_mb: int = 10
    attachments_max_files: int = 5
    attachments_base_path: str = "./uploads"
    allowed_extensions: str = "jpeg,jpg,png,gif,pdf,doc,docx,txt,xlsx,zip"
    allowed_mime_types: str = "image/jpeg,image/png,image/gif,application/pdf,application/msword,application/vnd.openxmlformats-officedocument.wordprocessingml.document,text/plain,application/vnd.openxmlformats-officedocument.spreadsheetml.sheet,application/zip,application/x-zip-compressed"

    # SMTP relay
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_seconds: int = 30
    email_from_name: str = "QuickDesk Support"
    email_from_address: Optional[str] = None

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "http://localhost:3000"

    # Frontend URL (for email links)
    frontend_url: str = "http://localhost:3000"

    # Notification worker
    notification_worker_enabled: bool = True
    scheduler_interval_seconds: int = 10
    notification_max_retries: int = 5
    notification_lock_duration_seconds: int = 60
    stale_lock_cleanup_minutes: int = 10

    # Environment
    environment: str = "development"
    debug: bool = True

    # Seed script
    bootstrap_admin_subject_id: str = "admin-subject-id"
    bootstrap_admin_email: str = "admin@quickdesk.com"
    bootstrap_admin_name: str = "Admin User"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def allowed_mime_types_list(self) -> List[str]:
        """Parse allowed mime types string to list"""
        return [mime.strip() for mime in self.allowed_mime_types.split(",")]

    @property
    def allowed_extensions_list(self) -> List[str]:
        """Parse allowed file extensions string to list (lower-case, no dot)"""
        return [ext.strip().lower().lstrip(".") for ext in self.allowed_extensions.split(",")]

    @property
    def attachments_max_bytes(self) -> int:
        """Max attachment size in bytes"""
        return self.attachments_max_mb * 1024 * 1024

    @property
    def is_development(self) -> bool:
        """Local environments where ID tokens are decoded without a signature check"""
        return self.environment.lower() in DEVELOPMENT_ENVIRONMENTS

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"

    @property
    def email_sender(self) -> str:
        """From header for outgoing mail"""
        address = self.email_from_address or self.smtp_username
        return f"{self.email_from_name} <{address}>"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
