"""
Configuración de Ubicador leída de variables de entorno.
"""

import os
from typing import Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

DEFAULT_API_URL = "http://localhost:3001/api"

_ENV_FIELDS = {
    "UBICADOR_API_URL": "api_url",
    "UBICADOR_TIMEOUT": "timeout",
    "UBICADOR_MAX_RETRIES": "max_retries",
    "UBICADOR_VERIFY_SSL": "verify_ssl",
    "UBICADOR_COUNTRY_RESTRICTION": "country_restriction",
    "UBICADOR_STATUS_TTL": "status_ttl",
    "UBICADOR_GUARD_TIMEOUT": "guard_timeout",
    "UBICADOR_CACHE_TTL": "cache_ttl",
}


class Settings(BaseModel):
    """Parámetros de conexión y tiempos del motor de sincronización."""

    api_url: str = Field(DEFAULT_API_URL, description="Base del backend, incluye /api")
    timeout: float = Field(5.0, gt=0, description="Timeout por petición (s)")
    max_retries: int = Field(3, ge=0, le=10)
    verify_ssl: bool = True
    country_restriction: str = Field("do", min_length=2, max_length=2)
    status_ttl: float = Field(8.0, gt=0, description="Tiempo visible del mensaje de estado (s)")
    guard_timeout: float = Field(2.0, gt=0, description="Liberación forzada del loop guard (s)")
    cache_ttl: float = Field(3600, ge=0, description="TTL de las listas del catálogo (s)")

    @field_validator("api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("La URL del backend debe empezar por http:// o https://")
        return v.rstrip("/")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Construye la configuración desde el entorno (os.environ por defecto).

        Raises:
            ConfigurationError: si alguna variable tiene un valor inválido
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[var]
            for var, field in _ENV_FIELDS.items()
            if environ.get(var, "").strip()
        }
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(
                "Configuración inválida",
                details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]}
            ) from e
