# Runtime configuration, read from the environment.

import logging
import os
import sys
from dataclasses import dataclass


@dataclass
class Settings:
    database_url: str = "sqlite:///./kanban.db"
    log_level: str = "INFO"
    sql_echo: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            log_level=os.getenv("KANBAN_LOG_LEVEL", cls.log_level).upper(),
            sql_echo=os.getenv("KANBAN_SQL_ECHO", "").lower() in ("1", "true", "yes"),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
