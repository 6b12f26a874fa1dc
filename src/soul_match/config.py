from dataclasses import dataclass
import os
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    base_dir: Path
    data_dir: Path
    sessions_db_path: Path
    local_slot_path: Path
    secret_key: str
    public_base_url: str
    session_store_backend: str
    session_store_timeout: float
    session_ttl_hours: int
    supabase_url: str | None
    supabase_key: str | None
    supabase_table: str
    log_level: str

    @classmethod
    def from_env(cls) -> "AppConfig":
        base_dir = Path(__file__).resolve().parents[2]
        data_dir = Path(os.getenv("SOUL_MATCH_DATA_DIR", str(base_dir / "data")))
        data_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            base_dir=base_dir,
            data_dir=data_dir,
            sessions_db_path=data_dir / "sessions.db",
            local_slot_path=data_dir / "local_slot.db",
            secret_key=os.getenv("FLASK_SECRET_KEY", "dev-secret"),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5000").rstrip("/"),
            session_store_backend=os.getenv("SESSION_STORE_BACKEND", "auto").lower(),
            session_store_timeout=float(os.getenv("SESSION_STORE_TIMEOUT", "5")),
            session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "24")),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_ANON_KEY"),
            supabase_table=os.getenv("SUPABASE_SESSIONS_TABLE", "sessions"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)
