from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///patrimonio.db",
    )
    # Read-only mirror of the patrimony master data (SIGA).
    SQLALCHEMY_BINDS = {
        "siga": os.getenv("SIGA_DATABASE_URL", "sqlite:///siga.db"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    SCANNER_BURST_MS = int(os.getenv("SCANNER_BURST_MS", "50"))
    SCANNER_IDLE_RESET_MS = int(os.getenv("SCANNER_IDLE_RESET_MS", "200"))
    SCANNER_MIN_LENGTH = int(os.getenv("SCANNER_MIN_LENGTH", "10"))
    SCANNER_TIMING_ENABLED = os.getenv("SCANNER_TIMING_ENABLED", "1") != "0"
    PAGE_SIZE_DEFAULT = int(os.getenv("PAGE_SIZE_DEFAULT", "20"))
