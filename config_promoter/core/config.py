from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "Config Promoter"
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # GitHub
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_OWNER: Optional[str] = None
    GITHUB_BRANCH: str = "main"
    GITHUB_TIMEOUT_SECONDS: float = 30.0

    # Retry policy for host calls (fixed delay unless backoff > 1)
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_RETRY_DELAY_SECONDS: float = 1.0
    GITHUB_RETRY_BACKOFF: float = 1.0

    # Batch commits
    COMMIT_BATCH_SIZE: int = 5
    INTER_BATCH_DELAY_SECONDS: float = 1.0

    # Environment chain, in promotion order
    ENVIRONMENT_CHAIN: List[str] = ["Dev", "QA", "Stage", "Prod"]
    REPO_NAME_TEMPLATE: str = "config-{env}-repo"
    DEFAULT_VERSION_FOLDER: str = "V1"
    DEFAULT_TAG_NAME: str = "v1.0.0"
    SAMPLE_ARTIFACT_COUNT: int = 50


settings = Settings()
