"""
Configuration for Conflict Service
==================================

Environment variables:
- DATABASE_URL: SQLAlchemy URL of the case corpus (default: sqlite:///./conflicts.db)
- ENABLE_TRANSLITERATION: fold Cyrillic names to Latin in name keys (default: true)
- STRIP_LEGAL_FORM_PREFIXES: drop leading "LLC", "ООО", ... from name keys (default: true)
- REPORT_LANGUAGE: language of reasons/recommendations, en|ru (default: en)
- CHECK_TIMEOUT_SECONDS: default deadline for a single check (default: none)
- LOOKUP_STATEMENT_TIMEOUT_MS: per-statement timeout on PostgreSQL (default: 30000)
- MAX_CANDIDATES_PER_IDENTITY: corpus scan bound (default: 10000)
"""

from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


SUPPORTED_LANGUAGES = ("en", "ru")


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Name matching
    enable_transliteration: bool = True
    strip_legal_form_prefixes: bool = True

    # Reporting
    report_language: str = "en"
    notify_on_conflict: bool = True
    high_risk_list_limit: int = 50
    stats_window_days: int = 30

    # Corpus access
    check_timeout_seconds: Optional[float] = None
    lookup_statement_timeout_ms: int = 30000
    snapshot_isolation_level: str = "REPEATABLE READ"
    max_candidates_per_identity: int = 10000

    # Service info
    service_version: str = "1.0.0"

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if self.report_language not in SUPPORTED_LANGUAGES:
            warnings.append(
                f"REPORT_LANGUAGE={self.report_language} is not supported, falling back to 'en'"
            )

        if self.check_timeout_seconds is not None and self.check_timeout_seconds <= 0:
            warnings.append("CHECK_TIMEOUT_SECONDS must be positive; deadline disabled")

        if self.max_candidates_per_identity < 1:
            warnings.append("MAX_CANDIDATES_PER_IDENTITY must be at least 1")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
