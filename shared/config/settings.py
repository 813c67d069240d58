from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache

MB = 1024 * 1024


class Settings(BaseSettings):
    # Service Configuration
    service_name: str = "knowledge-upload"
    service_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Backend Configuration
    backend_url: str = "http://localhost:54321/functions/v1"
    backend_api_token: Optional[str] = None
    backend_user_id: str = "anonymous"
    backend_timeout_seconds: float = 30.0
    backend_transfer_timeout_seconds: float = 15 * 60  # large PDFs
    backend_stream_slice_bytes: int = 1 * MB

    # Chunking Configuration
    chunking_threshold_bytes: int = 45 * MB
    chunk_size_bytes: int = 40 * MB

    # Validation Configuration
    max_pdf_size_bytes: int = 500 * MB
    max_other_size_bytes: int = 25 * MB
    max_files_per_batch: int = 10
    upload_spool_dir: str = "./uploads"

    # Upload retry Configuration
    max_upload_retries: int = 3
    chunk_max_attempts: int = 3
    chunk_retry_base_delay_seconds: float = 4.0  # 4s, then 8s between chunk attempts
    request_max_attempts: int = 3
    request_retry_max_delay_seconds: float = 10 * 60

    # Progress Configuration
    progress_mode: str = "real"  # real, simulated
    simulated_progress_step: int = 10
    simulated_progress_interval_seconds: float = 0.8

    # Reconciliation Configuration
    poll_interval_seconds: float = 2.0
    tracking_timeout_seconds: float = 5 * 60
    completed_grace_seconds: float = 3.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "KB_UPLOAD_"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
