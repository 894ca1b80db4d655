import pytz
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./repricer.db"
    # database_url: str = "postgresql+psycopg://repricer@/repricer?host=/var/run/postgresql"

    # 마켓플레이스 가격 반영 API
    marketplace_api_base_url: str = "https://suppliers-api.wildberries.ru"
    marketplace_api_key: str = ""
    price_push_timeout_seconds: float = 30.0  # 외부 호출 전체 상한 (재시도 포함)
    price_push_retry_count: int = 3  # tenacity 재시도 횟수

    # 리프라이싱 기본값 (전략에 값이 없을 때)
    default_cooldown_minutes: int = 360  # 6시간
    default_max_changes_per_day: int = 3
    default_signal_priority: int = 5
    business_timezone: str = "Europe/Moscow"  # "오늘" 기준 자정
    currency: str = "RUB"

    # 동시성
    reprice_lock_timeout_seconds: float = 10.0  # SKU 락 대기 상한

    # 스케줄러
    signal_sweep_batch_size: int = 50
    signal_sweep_interval_seconds: int = 300  # 5분
    interval_signal_interval_seconds: int = 1800  # 30분

    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("marketplace_api_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v

    @field_validator("price_push_timeout_seconds", "reprice_lock_timeout_seconds")
    @classmethod
    def validate_positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("타임아웃은 0보다 커야 합니다.")
        return v

    @field_validator("default_cooldown_minutes", "default_max_changes_per_day", "price_push_retry_count")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("값은 0 이상이어야 합니다.")
        return v

    @field_validator("default_signal_priority")
    @classmethod
    def validate_priority(cls, v: int) -> int:
        if not 0 <= v <= 10:
            raise ValueError("시그널 우선순위는 0에서 10 사이여야 합니다.")
        return v

    @field_validator("signal_sweep_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 1000:
            raise ValueError("signal_sweep_batch_size는 1에서 1000 사이여야 합니다.")
        return v

    @field_validator("business_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"알 수 없는 타임존입니다: {v}")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
