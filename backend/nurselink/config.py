import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/nurselink.db"
    log_level: str = "INFO"

    # Run status store: "redis" (shared by API and workers) or "memory"
    # (single process, e.g. eager Celery or local runs)
    run_status_backend: str = "redis"
    redis_url: str = "redis://localhost:6379"
    run_status_ttl_seconds: int = 86400

    # Celery configuration
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"
    matching_worker_concurrency: int = 4
    matching_task_time_limit_seconds: int = 120

    # Scoring weights (maximum points per factor)
    weight_specialization: float = 40.0
    weight_experience: float = 25.0
    weight_rating: float = 20.0
    weight_distance: float = 15.0
    weight_certification: float = 5.0
    experience_saturation_years: float = 10.0

    # Thresholds
    qualification_threshold: float = 60.0  # below this a match is not offered
    auto_apply_threshold: float = 70.0  # provisional application created

    # Mission defaults when the mission record leaves them unset
    default_max_candidates: int = 10
    default_max_distance_km: float = 50.0
    default_min_rating: float = 3.0

    # I/O bounds for one orchestrator run
    candidate_fetch_timeout_seconds: float = 10.0
    write_timeout_seconds: float = 5.0

    # Notification delivery: empty URL means log-only channel
    notification_webhook_url: str = ""
    notification_webhook_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the API process or a worker."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
