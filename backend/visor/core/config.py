"""Configuración central basada en variables de entorno."""

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Valores globales leídos desde `.env` o el entorno."""

    environment: str = "development"
    log_level: str | None = Field(
        default=None,
        description="Nivel de logging global (ej. debug, info, warning). Cuando no se define, usa un valor por ambiente.",
    )
    log_file_path: str | None = Field(
        default=None,
        description="Archivo rotativo opcional para los logs en formato JSON.",
    )
    request_log_level: str = Field(
        default="info",
        description=(
            "Nivel mínimo para registrar solicitudes en middleware. "
            "Valores más altos (warning/error) reducen registros de peticiones exitosas."
        ),
    )
    request_log_skip_prefixes: tuple[str, ...] = Field(
        default=("/health", "/favicon", "/docs", "/openapi"),
        description="Prefijos de ruta para los que no se registrarán eventos de request.started/completed.",
    )
    # Sin cadena de conexión el proceso no arranca
    mongodb_uri: str = Field(
        ...,
        validation_alias=AliasChoices("VISOR_MONGODB_URI", "MONGODB_URI"),
        description="Cadena de conexión a MongoDB.",
    )
    mongodb_database: str = Field(default="Agendamientos", description="Base de datos con los historiales.")
    mongodb_server_selection_timeout_ms: int = Field(default=5000, ge=100)
    default_collection: str = Field(
        default="mensajes",
        description="Colección que se muestra al entrar a la raíz del servicio.",
    )
    chats_default_limit: int = Field(default=100, ge=1)
    chats_max_limit: int = Field(default=500, ge=1)
    export_limit: int = Field(
        default=1000,
        ge=1,
        description="Tope de documentos por exportación; protege la memoria del proceso.",
    )
    dashboard_recent_limit: int = Field(default=5, ge=1)
    preview_length: int = Field(
        default=100,
        ge=1,
        description="Caracteres del último mensaje mostrados en conversaciones recientes.",
    )
    model_config = SettingsConfigDict(env_file=".env", env_prefix="VISOR_", extra="allow")

    @model_validator(mode="after")
    def _check_export_limit(self) -> "Settings":
        # Una exportación nunca puede traer menos que la vista interactiva
        if self.export_limit < self.chats_max_limit:
            raise ValueError(
                f"export_limit ({self.export_limit}) debe ser >= chats_max_limit ({self.chats_max_limit})"
            )
        return self


settings = Settings()
