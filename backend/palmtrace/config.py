from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str = "sqlite:///palmtrace.db"
    LOG_LEVEL: str = "INFO"
    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # Mass balance: relative tolerance for conservation and conversion checks
    MASS_BALANCE_TOLERANCE: float = 0.01
    # Anomaly detection thresholds (standard deviations / multiples of mean)
    ANOMALY_ZSCORE_THRESHOLD: float = 2.0
    ANOMALY_HIGH_ZSCORE: float = 3.0
    QUANTITY_ANOMALY_MULTIPLIER: float = 10.0
    # Lineage traversal ceilings
    LINEAGE_MAX_DEPTH: int = 50
    LINEAGE_MAX_NODES: int = 5000
    LINEAGE_TIMEOUT_SECONDS: float = 30.0
    RISK_ASSESSMENT_CONFIG: str = "config/risk_assessment.yaml"
    REPORT_EXPORT_URL: str = "/api/lineage-reports/{report_id}/export"


settings = Settings()
