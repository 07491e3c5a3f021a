import os


class Settings:
    # API Settings
    PROJECT_NAME: str = "Multimeter Metrics API"
    VERSION: str = "0.1.0"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 8005))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Root registry used by instance-bound objects that don't name one
    DEFAULT_GROUP: str = os.getenv("MULTIMETER_DEFAULT_GROUP", "multimeter")
    DEFAULT_SCOPE: str = os.getenv("MULTIMETER_DEFAULT_SCOPE", "instances")

    # Export Settings
    EXPORT_ENABLED: bool = os.getenv("MULTIMETER_EXPORT_ENABLED", "true").lower() == "true"
    REPORT_INTERVAL: float = float(os.getenv("MULTIMETER_REPORT_INTERVAL", "0"))  # seconds, 0 = off

    # Logging Settings
    LOG_LEVEL: str = os.getenv("MULTIMETER_LOG_LEVEL", "INFO").upper()
    LOG_FILE: str = os.getenv("MULTIMETER_LOG_FILE", "")


settings = Settings()
