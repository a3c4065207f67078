from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Public key the CRM platform signs webhook deliveries with.
CRM_WEBHOOK_PUBLIC_KEY = """-----BEGIN PUBLIC KEY-----
MIICIjANBgkqhkiG9w0BAQEFAAOCAg8AMIICCgKCAgEAokvo/r9tVgcfZ5DysOSC
Frm602qYV0MaAiNnX9O8KxMbiyRKWeL9JpCpVpt4XHIcBOK4u3cLSqJGOLaPuXw6
dO0t6Q/ZVdAV5Phz+ZtzPL16iCGeK9po6D6JHBpbi989mmzMryUnQJezlYJ3DVfB
csedpinheNnyYeFXolrJvcsjDtfAeRx5ByHQmTnSdFUzuAnC9/GepgLT9SM4nCpv
uxmZMxrJt5Rw+VUaQ9B8JSvbMPpez4peKaJPZHBbU3OdeCVx5klVXXZQGNHOs8gF
3kvoV5rTnXV0IknLBXlcKKAQLZcY/Q9rG6Ifi9c+5vqlvHPCUJFT5XUGG5RKgOKU
J062fRtN+rLYZUV+BjafxQauvC8wSWeYja63VSUruvmNj8xkx2zE/Juc+yjLjTXp
IocmaiFeAO6fUtNjDeFVkhf5LNb59vECyrHD2SQIrhgXpO4Q3dVNA5rw576PwTzN
h/AMfHKIjE4xQA1SZuYJmNnmVZLIZBlQAF9Ntd03rfadZ+yDiOXCCs9FkHibELhC
HULgCsnuDJHcrGNd5/Ddm5hxGQ0ASitgHeMZ0kcIOwKDOzOU53lDza6/Y09T7sYJ
PQe7z0cvj7aE4B+Ax1ZoZGPzpJlZtGXCsu9aTEGEnKzmsFqwcSsnw3JB31IGKAyk
T1hhTiaCeIY/OwwwNUY2yvcCAwEAAQ==
-----END PUBLIC KEY-----
"""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: SecretStr

    # Redis (optional, only backs the health cache)
    REDIS_URL: SecretStr | None = None
    CACHE_PREFIX: str = "crm_webhooks"

    # Scheduler trigger
    CRON_SECRET: SecretStr

    # Webhook verification
    WEBHOOK_PUBLIC_KEY: str = CRM_WEBHOOK_PUBLIC_KEY
    WEBHOOK_SIGNATURE_HEADER: str = "x-wh-signature"
    REPLAY_WINDOW_SECONDS: int = 300

    # Deduplication
    DEDUP_WINDOW_SECONDS: int = 60
    DEDUP_RECORD_TTL_SECONDS: int = 300

    # Queue
    QUEUE_ITEM_TTL_DAYS: int = 7
    LEASE_SECONDS: int = 300
    RETRY_BASE_DELAY_SECONDS: int = 60
    RETRY_MAX_DELAY_SECONDS: int = 3600
    MAX_ATTEMPTS: int = 3

    # Batch worker
    WORKER_BATCH_SIZE: int = 50
    WORKER_CONCURRENCY: int = 5
    WORKER_MAX_RUNTIME_SECONDS: float = 50.0
    WORKER_IDLE_SLEEP_SECONDS: float = 1.0
    SLOW_EVENT_SECONDS: float = 2.0

    # Direct processing
    DIRECT_PROCESS_EVENT_TYPES: str = "InboundMessage,OutboundMessage"

    # System health
    HEALTH_MAX_CRITICAL_PENDING: int = 100
    HEALTH_MAX_MESSAGES_PENDING: int = 500
    HEALTH_MAX_ERROR_RATE: float = 0.1
    HEALTH_ERROR_WINDOW_SECONDS: int = 300
    HEALTH_CACHE_TTL_SECONDS: int = 5

    # External CRM
    CRM_API_KEY: SecretStr | None = None
    SETUP_TRIGGER_URL: str | None = None
    SETUP_TRIGGER_TIMEOUT_SECONDS: float = 10.0

    # Rate Limiting
    RATE_LIMIT_WEBHOOK: str = "1000/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Server
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000
    BACKEND_WORKERS: int = 1

    # - Development -
    DEV_UVICORN_RELOAD: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "DEBUG"

    @property
    def direct_process_event_types(self) -> frozenset[str]:
        return frozenset(
            event_type.strip()
            for event_type in self.DIRECT_PROCESS_EVENT_TYPES.split(",")
            if event_type.strip()
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
