from typing import Optional
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    host: str = Field(default="localhost", alias="POSTGRES_HOST")
    port: int = Field(default=5432, alias="POSTGRES_DB_PORT")
    db_name: str = Field(default="flashgen", alias="POSTGRES_DB_NAME")
    user: str = Field(default="postgres", alias="POSTGRES_DB_USER")
    password: str = Field(default="postgres", alias="POSTGRES_DB_PASSWORD")
    echo: bool = Field(default=False, alias="DB_ECHO")

    @computed_field
    def connection_string(self) -> str:
        # DATABASE_URL wins so local runs and tests can point at sqlite+aiosqlite
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    issuer: str = Field(default="https://auth.example.com", alias="JWT_ISSUER")
    application_id: str = Field(default="flashgen", alias="JWT_APPLICATION_ID")
    token_lifetime_seconds: int = Field(
        default=3600, alias="JWT_TOKEN_LIFETIME_SECONDS"
    )
    private_key_path: str = Field(
        default="jwt_rsa_key.pem", alias="JWT_PRIVATE_KEY_PATH"
    )


class GenerationSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    default_model: str = Field(
        default="gemini-2.0-flash", alias="GENERATION_DEFAULT_MODEL"
    )
    source_text_min: int = Field(default=1000, alias="GENERATION_SOURCE_TEXT_MIN")
    source_text_max: int = Field(default=10000, alias="GENERATION_SOURCE_TEXT_MAX")
    max_cards: int = Field(default=50, alias="GENERATION_MAX_CARDS")
    queue_concurrency: int = Field(default=2, alias="GENERATION_QUEUE_CONCURRENCY")

    # Progress stream (SSE) tuning
    stream_poll_seconds: float = Field(
        default=1.0, alias="GENERATION_STREAM_POLL_SECONDS"
    )
    stream_heartbeat_seconds: float = Field(
        default=15.0, alias="GENERATION_STREAM_HEARTBEAT_SECONDS"
    )
    stream_timeout_seconds: float = Field(
        default=900.0, alias="GENERATION_STREAM_TIMEOUT_SECONDS"
    )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="flashgen", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")
    jwt_secret: str = Field(alias="JWT_SECRET")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:4321"],
        alias="CORS_ORIGINS",
    )

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"

    @computed_field
    def api_prefix(self) -> str:
        return f"/api/{self.version}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    database: DatabaseSettings = Field(default_factory=lambda: DatabaseSettings())
    jwt: JWTSettings = Field(default_factory=lambda: JWTSettings())
    generation: GenerationSettings = Field(
        default_factory=lambda: GenerationSettings()
    )

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")


settings = Settings()
