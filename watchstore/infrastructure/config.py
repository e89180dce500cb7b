from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="WATCHSTORE_")

    in_memory: bool = False
    db_uri: str = "watchstore.db"

    log_level: str = "INFO"
    log_to_console: bool = False

    @property
    def database(self) -> str:
        return ":memory:" if self.in_memory else self.db_uri
