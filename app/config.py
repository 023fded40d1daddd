from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # =================================================================
    # HUBSPOT (target system)
    # =================================================================
    HUBSPOT_ACCESS_TOKEN: str = ""
    HUBSPOT_API_URL: str = "https://api.hubapi.com"
    HUBSPOT_TIMEOUT_SECONDS: float = 30.0
    # Search pages of 100 followed before a result set counts as truncated
    HUBSPOT_SEARCH_MAX_PAGES: int = 10

    # Custom job object
    HUBSPOT_JOB_OBJECT_TYPE: str = "tracker_jobs"
    HUBSPOT_JOB_ID_PROPERTY: str = "tracker_job_id"
    HUBSPOT_JOB_NAME_PROPERTY: str = "job_name"
    HUBSPOT_JOB_STATUS_PROPERTY: str = "job_status"
    HUBSPOT_JOB_CREATED_DATE_PROPERTY: str = "job_created_date_tracker"
    HUBSPOT_JOB_TYPE_PROPERTY: str = "job_type"
    HUBSPOT_ENGAGEMENT_DIRECTOR_PROPERTY: str = "engagement_director"
    HUBSPOT_JOB_VALUE_PROPERTY: str = "job_value"
    HUBSPOT_JOB_OWNER_PROPERTY: str = "job_owner"

    # Standard deal / company objects (read-only)
    HUBSPOT_DEAL_NAME_PROPERTY: str = "dealname"
    HUBSPOT_DEAL_SERVICE_LINE_PROPERTY: str = "service_line"
    HUBSPOT_DEAL_SERVICE_LINE_RETAINED_VALUE: str = "Retained Search"
    HUBSPOT_DEAL_CREATED_DATE_PROPERTY: str = "createdate"
    HUBSPOT_COMPANY_NAME_PROPERTY: str = "name"

    # Custom placement object
    HUBSPOT_PLACEMENT_OBJECT_TYPE: str = "tracker_placements"
    HUBSPOT_PLACEMENT_ID_PROPERTY: str = "placement_id_tracker"
    HUBSPOT_PLACEMENT_NAME_PROPERTY: str = "placement_name"
    HUBSPOT_PLACEMENT_STATUS_PROPERTY: str = "placement_status"
    HUBSPOT_PLACEMENT_OUTCOME_PROPERTY: str = "placement_outcome_type"
    HUBSPOT_PLACEMENT_JOB_ID_PROPERTY: str = "job_id_tracker"
    HUBSPOT_PLACEMENT_JOB_NAME_PROPERTY: str = "job_name"
    HUBSPOT_PLACEMENT_CANDIDATE_ID_PROPERTY: str = "candidate_id_tracker"
    HUBSPOT_PLACEMENT_CANDIDATE_NAME_PROPERTY: str = "candidate_name"

    # Contacts (placed candidates only)
    HUBSPOT_CONTACT_ID_PROPERTY: str = "candidate_id_tracker"
    HUBSPOT_CONTACT_LIFECYCLE_STAGE: str = "Placed Candidate"

    # Labelled association type ids; None uses the HubSpot default association
    HUBSPOT_JOB_TO_DEAL_ASSOCIATION_TYPE_ID: int | None = None
    HUBSPOT_JOB_TO_COMPANY_ASSOCIATION_TYPE_ID: int | None = None
    HUBSPOT_PLACEMENT_TO_JOB_ASSOCIATION_TYPE_ID: int | None = None
    HUBSPOT_PLACEMENT_TO_DEAL_ASSOCIATION_TYPE_ID: int | None = None
    HUBSPOT_PLACEMENT_TO_COMPANY_ASSOCIATION_TYPE_ID: int | None = None
    HUBSPOT_PLACEMENT_TO_CONTACT_ASSOCIATION_TYPE_ID: int | None = None

    # =================================================================
    # TRACKER (source system)
    # =================================================================
    TRACKER_API_URL: str = "https://api.trackersoftware.com/v1"
    TRACKER_API_KEY: str = ""
    TRACKER_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # SYNC / POLLING
    # =================================================================
    POLLING_ENABLED: bool = True
    POLLING_INTERVAL_HOURS: float = 24.0
    SYNC_PAGE_SIZE: int = 100
    SYNC_MAX_CONCURRENCY: int = 5
    SYNC_CYCLE_TIMEOUT_SECONDS: float | None = None

    # Retry
    MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Matching: "exact" (normalized equality, exactly one) or "fuzzy" (containment + cascade)
    MATCHING_MODE: str = "fuzzy"
    MATCHING_CREATED_DATE_WINDOW_DAYS: int = 14
    MATCHING_STRIP_PUNCTUATION: bool = False

    # =================================================================
    # WEBHOOK / IDEMPOTENCY
    # =================================================================
    WEBHOOK_SECRET: str | None = None
    IDEMPOTENCY_BACKEND: str = "memory"  # "memory" or "redis"
    IDEMPOTENCY_MAX_SIZE: int = 10000
    IDEMPOTENCY_TTL_SECONDS: int = 7 * 24 * 3600

    REDIS_URL: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def operating_mode(self) -> str:
        """Report how records reach the service: scheduled polling or webhooks only."""
        return "polling" if self.POLLING_ENABLED else "webhook"

    def get_redis_config(self) -> dict:
        """
        Get Redis pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "max_connections": 20,
            "socket_connect_timeout": 10,
            "socket_timeout": 10,
        }

        if self.environment == "development":
            config.update({"max_connections": 5, "socket_connect_timeout": 5})

        return config


settings = Settings()
