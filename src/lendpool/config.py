"""
Centralized configuration management using pydantic-settings.
All services should import Settings from this module.
"""

from typing import Dict, Optional
from enum import Enum
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTNET = "testnet"


class LedgerSettings(BaseSettings):
    """Lending ledger settings."""
    administrator: str = Field(default="admin", description="Identity allowed to configure the ledger and claim collateral")
    custody_account: str = Field(default="lendpool-custody", description="Account holding pooled reserves and collateral")
    native_asset: str = Field(default="ETH", description="Symbol of the native collateral currency")
    reserve_assets: Dict[str, str] = Field(default_factory=dict, description="Reserve asset identifiers mapped to symbols, registered at startup")
    initial_interest_rate: int = Field(default=500, ge=0, description="Interest rate scaled by 10,000 (500 = 5%)")
    loan_period_seconds: int = Field(default=30 * 24 * 60 * 60, gt=0, description="Maximum loan duration in seconds")

    model_config = SettingsConfigDict(env_prefix="LEDGER_")


class KafkaSettings(BaseSettings):
    """Kafka-specific settings."""
    enabled: bool = Field(default=False, description="Publish ledger events to Kafka")
    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    producer_timeout_ms: int = Field(default=10000, description="Producer timeout in milliseconds")

    # Topic names
    topic_loan_events: str = Field(default="loan_events", description="Loan lifecycle events topic")
    topic_config_events: str = Field(default="ledger_config_events", description="Configuration change events topic")
    topic_risk_alerts: str = Field(default="risk_alerts", description="Expired loan alerts topic")

    model_config = SettingsConfigDict(env_prefix="KAFKA_")


class MonitoringSettings(BaseSettings):
    """Monitoring and observability settings."""
    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    # Expiry reporting
    expiry_check_interval: int = Field(default=300, description="Seconds between expired-loan scans")

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class ApiSettings(BaseSettings):
    """HTTP API settings."""
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8020, description="Bind port")

    model_config = SettingsConfigDict(env_prefix="API_")


class Settings(BaseSettings):
    """Main settings class combining all service settings."""
    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Environment")
    service_name: str = Field(default="lendpool", description="Service name")

    # Sub-settings
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
