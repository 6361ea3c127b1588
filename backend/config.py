from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Firestore (leave project + emulator empty to run fully local)
    firebase_project_id: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None
    # auto | local | firestore: which client sync backend to use
    sync_backend: str = "auto"
    # CORS origins. Set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:5000",
        "http://127.0.0.1:5173",
    ]
    chat_history_limit: int = 100
    event_history_limit: int = 50
    # Client side: where the HQ server lives and how long to wait between reconnects
    server_url: str = "http://localhost:8000"
    ws_reconnect_delay: float = 3.0
    default_photo_url: str = "/avatars/default.png"
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    @property
    def firestore_configured(self) -> bool:
        return bool(self.firebase_project_id or self.firestore_emulator_host)


settings = Settings()
