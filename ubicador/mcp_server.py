"""
Ubicador MCP Server
===================

Servidor MCP (Model Context Protocol) que expone un formulario de ubicación
(búsqueda + mapa + desplegables del catálogo) a asistentes AI. Todas las
herramientas operan sobre una sesión compartida: el registro que devuelven
es siempre el registro canónico tras la operación.

Uso:
    # STDIO (por defecto)
    python -m ubicador.mcp_server

    # Comando instalado
    ubicador-mcp

    # HTTP
    python -m ubicador.mcp_server --transport http --port 8000
"""

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import Settings
from .exceptions import (
    ConfigurationError,
    CoordinateError,
    ParsingError,
    ServiceConnectionError,
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
    UbicadorError,
)
from .form import LocationForm
from .models import Level
from .utils.logging import setup_logging

# ============================================================================
# Configuración de Logging
# ============================================================================

log_level = os.getenv("FASTMCP_LOG_LEVEL", "INFO")
setup_logging(
    level=getattr(logging, log_level, logging.INFO),
    json_format=os.getenv("UBICADOR_LOG_JSON", "").lower() in ("1", "true", "yes"),
)
logger = logging.getLogger("ubicador.mcp")

# Sesión compartida del formulario
_form_instance: LocationForm | None = None
_form_lock = asyncio.Lock()


async def get_form() -> LocationForm:
    """
    Obtiene la sesión compartida del formulario (lazy loading).

    Returns:
        LocationForm: Formulario iniciado (países cargados y token de búsqueda)
    """
    global _form_instance

    if _form_instance is None:
        async with _form_lock:
            if _form_instance is None:
                settings = Settings.from_env()
                logger.info(
                    "Inicializando formulario (API: %s, timeout: %s)",
                    settings.api_url,
                    settings.timeout,
                )
                form = LocationForm(settings, logger=logger)
                await form.start()
                _form_instance = form

    return _form_instance


# ============================================================================
# Modelos de Validación de Parámetros
# ============================================================================

class SearchAddressParams(BaseModel):
    """Parámetros validados para search_address."""

    text: str = Field(..., min_length=1, max_length=200, description="Texto a buscar")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("El texto no puede estar vacío")
        return v.strip()


class SelectSuggestionParams(BaseModel):
    """Parámetros validados para select_suggestion."""

    index: int = Field(..., ge=0, le=50, description="Índice de la sugerencia")


class ClickMapParams(BaseModel):
    """Parámetros validados para click_map."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class SelectLevelParams(BaseModel):
    """Parámetros validados para select_level y list_options."""

    level: Level = Field(..., description="pais, provincia, ciudad o sector")
    id: str = Field("", max_length=64, description="Id del catálogo; vacío para deseleccionar")


class EditAddressParams(BaseModel):
    """Parámetros validados para edit_address."""

    text: str = Field(..., max_length=500)


# ============================================================================
# Utilidades
# ============================================================================

def convert_ubicador_error(e: Exception) -> Exception:
    """Convierte excepciones de Ubicador a excepciones estándar de Python.

    Los clientes MCP reciben así mensajes claros sin conocer la jerarquía.
    """
    if isinstance(e, ParsingError):
        return ValueError(f"Entrada inválida: {e.message}")

    elif isinstance(e, CoordinateError):
        return ValueError(f"Coordenadas inválidas: {e.message}")

    elif isinstance(e, ConfigurationError):
        return RuntimeError(f"Error de configuración del servicio: {e.message}")

    elif isinstance(e, ServiceTimeoutError):
        return TimeoutError(f"El backend no respondió a tiempo: {e.message}")

    elif isinstance(e, ServiceConnectionError):
        return ConnectionError(f"No se pudo conectar con el backend: {e.message}")

    elif isinstance(e, ServiceHTTPError):
        if e.status_code and 400 <= e.status_code < 500:
            return ValueError(f"Petición inválida al backend: {e.message}")
        return RuntimeError(f"Error del backend: {e.message}")

    elif isinstance(e, ServiceError):
        return RuntimeError(f"Error del servicio de ubicaciones: {e.message}")

    elif isinstance(e, UbicadorError):
        return RuntimeError(f"Error de ubicación: {e.message}")

    return e


def _snapshot(form: LocationForm) -> dict:
    """Registro + estado + selección actual de cada desplegable."""
    status = form.coordinator.status.current
    selected = {}
    for level, entry in form.coordinator.selector.selections().items():
        selected[level.value] = entry.model_dump(include={"id", "name"}) if entry else None
    return {
        "record": form.record.to_api(),
        "status": status.model_dump(include={"message", "kind"}) if status else None,
        "selected": selected,
        "marker": list(form.map.marker) if form.map.marker else None,
    }


def _invalid(tool: str, e: ValidationError) -> ValueError:
    logger.warning("Parámetros inválidos en %s: %s", tool, e)
    return ValueError(f"Parámetros inválidos: {e}")


# ============================================================================
# Configuración del Servidor MCP con Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app):
    """Cierra la sesión compartida del formulario al apagar el servidor."""
    logger.info("Iniciando servidor Ubicador MCP...")

    yield

    global _form_instance

    if _form_instance:
        logger.info("Cerrando sesión del formulario...")
        try:
            await _form_instance.close()
        except Exception as e:
            logger.error("Error al cerrar el formulario: %s", e, exc_info=True)
        _form_instance = None


mcp = FastMCP(
    name="Ubicador",
    instructions="""
    Formulario de ubicación con tres entradas sincronizadas: búsqueda de
    dirección, mapa y desplegables del catálogo (país, provincia, ciudad,
    sector). El registro resultante es siempre coherente.

    Flujo típico:
    1. search_address("Los Mina, Santo Domingo Este") y select_suggestion(0)
    2. o click_map(latitud, longitud)
    3. Completa a mano con list_options(nivel) y select_level(nivel, id)
    4. get_location() devuelve el registro final
    """.strip(),
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# Herramientas MCP
# ============================================================================

@mcp.tool()
async def search_address(text: str) -> list[dict]:
    """
    Busca direcciones con el autocompletado (mínimo 3 caracteres).

    Args:
        text: Texto parcial de la dirección

    Returns:
        Lista de sugerencias (index, description, main_text, secondary_text).
        Usa select_suggestion(index) para elegir una.
    """
    try:
        params = SearchAddressParams(text=text)
    except ValidationError as e:
        raise _invalid("search_address", e) from e

    form = await get_form()
    await form.search.type_text(params.text)
    predictions = form.search.predictions
    logger.info("search_address: '%s' -> %d sugerencias", params.text, len(predictions))
    return [
        {"index": i, **p.model_dump(include={"description", "main_text", "secondary_text"})}
        for i, p in enumerate(predictions)
    ]


@mcp.tool()
async def select_suggestion(index: int = 0) -> dict:
    """
    Elige una sugerencia de la última búsqueda y sincroniza mapa y desplegables.

    Args:
        index: Posición de la sugerencia en el resultado de search_address

    Returns:
        Registro de ubicación, mensaje de estado y selección de cada nivel
    """
    try:
        params = SelectSuggestionParams(index=index)
    except ValidationError as e:
        raise _invalid("select_suggestion", e) from e

    form = await get_form()
    predictions = form.search.predictions
    if params.index >= len(predictions):
        raise ValueError(f"No hay sugerencia {params.index}; la última búsqueda devolvió {len(predictions)}")

    try:
        await form.search.select(predictions[params.index])
        return _snapshot(form)
    except UbicadorError as e:
        logger.error("Error en select_suggestion: %s", e, exc_info=True)
        raise convert_ubicador_error(e) from e


@mcp.tool()
async def click_map(latitude: float, longitude: float) -> dict:
    """
    Coloca el marcador del mapa y sincroniza dirección y desplegables.

    Args:
        latitude: Latitud WGS84
        longitude: Longitud WGS84

    Returns:
        Registro de ubicación, mensaje de estado y selección de cada nivel
    """
    try:
        params = ClickMapParams(latitude=latitude, longitude=longitude)
    except ValidationError as e:
        raise _invalid("click_map", e) from e

    form = await get_form()
    try:
        await form.map.click(params.latitude, params.longitude)
        return _snapshot(form)
    except UbicadorError as e:
        logger.error("Error en click_map: %s", e, exc_info=True)
        raise convert_ubicador_error(e) from e


@mcp.tool()
async def list_options(level: str) -> dict:
    """
    Opciones del desplegable de un nivel.

    Args:
        level: pais, provincia, ciudad o sector

    Returns:
        Estado de carga, opciones (id, name) y id seleccionado
    """
    try:
        params = SelectLevelParams(level=level)
    except ValidationError as e:
        raise _invalid("list_options", e) from e

    form = await get_form()
    state = form.coordinator.selector.state(params.level)
    return {
        "level": params.level.value,
        "status": state.status.value,
        "options": [e.model_dump(include={"id", "name"}) for e in state.entries],
        "selected": state.selected.id if state.selected else None,
    }


@mcp.tool()
async def select_level(level: str, id: str = "") -> dict:
    """
    Elige una opción de un desplegable (vacía los niveles inferiores).

    Args:
        level: pais, provincia, ciudad o sector
        id: Id de la opción (de list_options); vacío para deseleccionar

    Returns:
        Registro de ubicación y selección de cada nivel
    """
    try:
        params = SelectLevelParams(level=level, id=id)
    except ValidationError as e:
        raise _invalid("select_level", e) from e

    form = await get_form()
    try:
        await form.coordinator.update_from_dropdown(params.level, params.id or None)
        return _snapshot(form)
    except UbicadorError as e:
        logger.warning("Error en select_level: %s", e)
        raise convert_ubicador_error(e) from e


@mcp.tool()
async def edit_address(text: str) -> dict:
    """
    Cambia el texto libre de la dirección sin tocar mapa ni desplegables.

    Args:
        text: Dirección a mano (calle, número, referencias)
    """
    try:
        params = EditAddressParams(text=text)
    except ValidationError as e:
        raise _invalid("edit_address", e) from e

    form = await get_form()
    form.coordinator.update_freeform_address(params.text)
    return _snapshot(form)


@mcp.tool()
async def get_location() -> dict:
    """
    Estado actual del formulario.

    Returns:
        Registro de ubicación, mensaje de estado, selección de cada nivel
        y posición del marcador
    """
    form = await get_form()
    return _snapshot(form)


# ============================================================================
# Función Principal (CLI)
# ============================================================================

def main():
    """Ejecuta el servidor MCP."""
    parser = argparse.ArgumentParser(
        description="Servidor MCP de Ubicador (búsqueda + mapa + catálogo de ubicaciones)"
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Tipo de transporte (default: stdio)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host para transporte HTTP (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Puerto para transporte HTTP (default: 8000)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Nivel de logging (sobrescribe FASTMCP_LOG_LEVEL)",
    )

    args = parser.parse_args()

    if args.log_level:
        logging.getLogger("ubicador").setLevel(getattr(logging, args.log_level))

    run_kwargs = {
        "transport": args.transport,
    }

    if args.transport == "http":
        run_kwargs["host"] = args.host
        run_kwargs["port"] = args.port
        logger.info("Iniciando servidor HTTP en %s:%s", args.host, args.port)
    else:
        logger.info("Iniciando servidor con transporte STDIO")

    if args.log_level:
        run_kwargs["log_level"] = args.log_level

    try:
        mcp.run(**run_kwargs)
    except KeyboardInterrupt:
        logger.info("Servidor detenido por el usuario")
        sys.exit(0)
    except Exception as e:
        logger.error("Error ejecutando servidor: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
