"""
Configuration settings for the partmon report service
"""

from pydantic_settings import BaseSettings
from typing import List, Literal

class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_path: str = "./partmon.db"
    database_busy_timeout: float = 30.0  # seconds

    # MQTT
    mqtt_server_address: str = "tcp://zencrust.cf:1883"
    mqtt_client_id: str = "dbstoreinstance"
    mqtt_keepalive: int = 2  # seconds
    mqtt_reconnect_min_delay: int = 1
    mqtt_reconnect_max_delay: int = 60
    connect_attempts: int = 10
    connect_backoff_seconds: float = 1.0
    connect_backoff_max_seconds: float = 30.0
    connect_retry_seconds: float = 60.0  # pause between exhausted connect rounds
    shutdown_grace_seconds: float = 2.0  # drain bound for in-flight messages
    app_namespace: str = "partmon"

    # Correlation
    relevant_signals: List[str] = ["dio", "Swicth Pressed"]
    alert_signals: List[str] = ["alert"]
    heartbeat_signals: List[str] = ["rssi"]
    last_seen_signal: str = "lastseen"
    installation_epoch: int = 1566129872  # unix seconds
    timezone: str = "Asia/Kolkata"

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 9503
    report_kind: Literal["alert", "interval"] = "alert"
    legacy_empty_payload: bool = True
    max_report_limit: int = 100

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def subscription_topic(self) -> str:
        return f"{self.app_namespace}/#"

# Global settings instance
settings = Settings()
