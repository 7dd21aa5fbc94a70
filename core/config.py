"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Dict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Source instance
    SOURCE_DHIS2_URL: str = "http://localhost:8080"
    SOURCE_DHIS2_USERNAME: str = "admin"
    SOURCE_DHIS2_PASSWORD: str = "district"

    # Destination instance
    DEST_DHIS2_URL: str = "http://localhost:8081"
    DEST_DHIS2_USERNAME: str = "admin"
    DEST_DHIS2_PASSWORD: str = "district"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Transfer scope
    DATA_SETS: List[str] = []
    START_DATE: str = ""
    END_DATE: str = ""
    ORG_UNIT_LEVELS: List[int] = []
    ORG_UNIT_NAMES: List[str] = []
    ORG_UNITS_FROM: str = "source"
    LEAF_ORG_UNITS_ONLY: bool = False
    PERIOD_TYPES: Dict[str, str] = {}

    # Pipeline behaviour
    TRANSFER_MODE: str = "org_unit"
    EXTRACTION_MODE: str = "csv"
    SQL_VIEW_ID: Optional[str] = None
    INCLUDE_CHILDREN: bool = False
    RESTRICT_TO_DATASET_ELEMENTS: bool = False
    VALUE_POLICY: str = "preserve"
    BATCH_SIZE: int = 1000
    CONCURRENCY: int = 3
    UNIT_TIMEOUT: Optional[float] = None
    STAGING_DIR: Optional[str] = None

    # Import options
    IMPORT_STRATEGY: str = "NEW_AND_UPDATES"
    ASYNC_IMPORT: bool = False
    DRY_RUN: bool = False
    SKIP_AUDIT: bool = False
    ID_SCHEME: str = "UID"
    PAYLOAD_FORMAT: str = "json"

    # HTTP
    REQUEST_TIMEOUT: float = 120.0
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    def to_transfer_config(self):
        """Build the runner configuration from environment settings"""
        from schemas.config import TransferConfig

        return TransferConfig(
            data_sets=self.DATA_SETS,
            start_date=self.START_DATE,
            end_date=self.END_DATE,
            org_unit_levels=self.ORG_UNIT_LEVELS,
            org_unit_names=self.ORG_UNIT_NAMES,
            org_units_from=self.ORG_UNITS_FROM,
            leaf_org_units_only=self.LEAF_ORG_UNITS_ONLY,
            period_types=self.PERIOD_TYPES,
            transfer_mode=self.TRANSFER_MODE,
            extraction_mode=self.EXTRACTION_MODE,
            sql_view_id=self.SQL_VIEW_ID,
            include_children=self.INCLUDE_CHILDREN,
            restrict_to_dataset_elements=self.RESTRICT_TO_DATASET_ELEMENTS,
            value_policy=self.VALUE_POLICY,
            batch_size=self.BATCH_SIZE,
            concurrency=self.CONCURRENCY,
            unit_timeout=self.UNIT_TIMEOUT,
            staging_dir=self.STAGING_DIR,
            strategy=self.IMPORT_STRATEGY,
            async_import=self.ASYNC_IMPORT,
            dry_run=self.DRY_RUN,
            skip_audit=self.SKIP_AUDIT,
            id_scheme=self.ID_SCHEME,
            payload_format=self.PAYLOAD_FORMAT,
        )


settings = Settings()
