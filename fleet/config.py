import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    ADMIN_PASSWORD: str

    DB_PATH: str = "fleet.db"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_FILE: str = "logs/fleet.log"
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and .env, if any)."""
        settings = cls(
            ADMIN_PASSWORD=os.getenv("ADMIN_PASSWORD", ""),
            DB_PATH=os.getenv("DB_PATH", "fleet.db"),
            HOST=os.getenv("HOST", "0.0.0.0"),
            PORT=int(os.getenv("PORT", "3000")),
            LOG_FILE=os.getenv("LOG_FILE", "logs/fleet.log"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        settings.validate()
        return settings

    # Runtime sanity‑checks
    def validate(self):
        missing = [k for k, v in self.__dict__.items() if v in (None, "")]
        if missing:
            raise RuntimeError(f"Missing required settings: {missing}")
