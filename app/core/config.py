from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1000
    DATABASE_URL: str
    DB_ECHO: bool = False

    # statement_timeout, applied on PostgreSQL only
    QUERY_TIMEOUT_MS: int = 15000

    HIERARCHY_MAX_DEPTH: int = 32
    HIERARCHY_MAX_NODES: int = 10000

    FALLBACK_POINTS: int = 10
    # rows a widget series request may read before giving up on sparse tags
    WIDGET_MAX_SCAN_ROWS: int = 20000
    # readings stamped this far ahead of the server clock still count as current
    CLOCK_SKEW_SECONDS: int = 60
    ONLINE_WINDOW_MINUTES: int = 5

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5500",
    ]

    MQTT_ENABLED: bool = False
    MQTT_BROKER_HOST: str = "localhost"
    MQTT_BROKER_PORT: int = 1883
    MQTT_TOPIC_ROOT: str = "flowmeters"
    MQTT_USERNAME: Optional[str] = None
    MQTT_PASSWORD: Optional[str] = None

    class Config:
        env_file = ".env"

settings = Settings()
