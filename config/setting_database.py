from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class SettingDatabase(BaseSettings):
    db_host: str = "127.0.0.1"
    db_port: int = 3306
    db_name: str = "server_inventory"
    db_user: str = "root"
    db_password: str = ""

    # full SQLAlchemy URL, wins over the db_* parts when set
    database_url: Optional[str] = None

    app_name: str = "Server Inventory API"
    app_version: str = "1.0.0"
    app_description: str = "Inventory of cloud servers with conflict-safe writes"
    debug: bool = False
    log_level: str = "INFO"

    server_host: str = "127.0.0.1"
    server_port: int = 8000
    server_reload: bool = False
    cors_origins: List[str] = ["http://localhost:5173"]

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"mysql+pymysql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"


def get_settings():
    return SettingDatabase()
