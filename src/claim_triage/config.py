from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # fetch (I/O-bound)
    fetch_concurrency: int = 15
    fetch_attempts: int = 3
    fetch_retry_delay: float = 0.3   # seconds between attempts
    fetch_timeout: float = 10.0      # per attempt

    # label detection
    classify_concurrency: int = 5
    max_labels: int = 15
    service_min_confidence: float = 30.0
    label_min_confidence: float = 50.0
    aws_region: str = "us-east-1"

    # hashing / dedup
    worker_count: int = 2
    hamming_threshold: int = 3
    fingerprint_method: Literal["digest", "phash"] = "digest"
    measure_quality: bool = False

    # report
    max_representative_images: int = 3
    min_analyzed_images: int = 3

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CLAIM_TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
