"""Runtime settings read from the environment.

    LEDGER_DATABASE_URL   SQLAlchemy URL of the document store
    LEDGER_LOG_LEVEL      logging level name (INFO, DEBUG, ...)
    LEDGER_LOG_FILE       optional path of a rotating log file
    LEDGER_DELETE_POLICY  ``total`` or ``remaining``: the amount removed from
                          the client's balance when a transaction is deleted
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_DATABASE_URL = "sqlite:///ledger_data.sqlite3"

DELETE_POLICY_TOTAL = "total"
DELETE_POLICY_REMAINING = "remaining"
DELETE_POLICIES = (DELETE_POLICY_TOTAL, DELETE_POLICY_REMAINING)


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    log_file: Optional[str] = None
    delete_policy: str = DELETE_POLICY_TOTAL

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if self.delete_policy not in DELETE_POLICIES:
            raise ValueError(
                f"Delete policy must be one of {', '.join(DELETE_POLICIES)}; got {self.delete_policy}"
            )


def load_settings() -> Settings:
    return Settings(
        database_url=os.environ.get("LEDGER_DATABASE_URL") or DEFAULT_DATABASE_URL,
        log_level=os.environ.get("LEDGER_LOG_LEVEL", "INFO"),
        log_file=os.environ.get("LEDGER_LOG_FILE") or None,
        delete_policy=os.environ.get("LEDGER_DELETE_POLICY", DELETE_POLICY_TOTAL).strip().lower(),
    )
