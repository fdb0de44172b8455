"""Configuration for the reportability engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Find and load .env file
_env_candidates = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent.parent / ".env.template",
]

for env_path in _env_candidates:
    if env_path.exists():
        load_dotenv(env_path)
        break


class Config:
    """Reportability engine configuration."""

    # --- Rule Catalog Source ---
    # Directory holding the three CSV rule tables
    RULES_DIR: str | None = os.getenv("REPORTABILITY_RULES_DIR")
    # Single JSON document with conditions/rules/criteria arrays (takes precedence)
    RULES_JSON_PATH: str | None = os.getenv("REPORTABILITY_RULES_JSON")
    CONDITIONS_FILE: str = os.getenv("REPORTABILITY_CONDITIONS_FILE", "conditions.csv")
    RULES_FILE: str = os.getenv("REPORTABILITY_RULES_FILE", "rules.csv")
    CRITERIA_FILE: str = os.getenv("REPORTABILITY_CRITERIA_FILE", "criteria.csv")

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def is_json_catalog_configured(cls) -> bool:
        """Check if a JSON rules document is configured."""
        return bool(cls.RULES_JSON_PATH)

    @classmethod
    def is_csv_catalog_configured(cls) -> bool:
        """Check if a CSV rules directory is configured."""
        return bool(cls.RULES_DIR)

    @classmethod
    def get_rules_source(cls) -> str | None:
        """Describe the configured rules source (JSON first, then CSV dir)."""
        if cls.is_json_catalog_configured():
            return cls.RULES_JSON_PATH
        if cls.is_csv_catalog_configured():
            return cls.RULES_DIR
        return None
