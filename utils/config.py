# utils/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    schema: str = "public"
    delivery_prefix: str = "ENT"
    batch_prefix: str = "LOTE"
    dashboard_view: str = "vw_production_dashboard"
    max_sequence_attempts: int = 5
    max_merge_attempts: int = 5
    log_level: str = "INFO"


def load_settings() -> Settings:
    """
    Read settings from the environment (and .env, if present).
    """
    load_dotenv()
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        schema=os.getenv("SCHEMA", "public"),
        delivery_prefix=os.getenv("DELIVERY_PREFIX", "ENT"),
        batch_prefix=os.getenv("BATCH_PREFIX", "LOTE"),
        dashboard_view=os.getenv("DASHBOARD_VIEW", "vw_production_dashboard"),
        max_sequence_attempts=int(os.getenv("MAX_SEQUENCE_ATTEMPTS", "5")),
        max_merge_attempts=int(os.getenv("MAX_MERGE_ATTEMPTS", "5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
