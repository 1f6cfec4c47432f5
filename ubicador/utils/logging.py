import json
import logging
import contextvars
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


# Número de secuencia de la sincronización en curso. Permite seguir en los
# logs un flujo búsqueda/mapa → match → cascada aunque se intercale con otros.
sync_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "sync_id", default=None
)


def set_sync_id(sync_id: Optional[str]) -> contextvars.Token:
    """Establece el sync_id del contexto actual y devuelve el token para restaurarlo."""
    return sync_id_var.set(sync_id)


def get_sync_id() -> Optional[str]:
    return sync_id_var.get()


@contextmanager
def sync_context(sync_id: str) -> Iterator[None]:
    """Etiqueta con `sync_id` todos los logs emitidos dentro del bloque."""
    token = set_sync_id(sync_id)
    try:
        yield
    finally:
        sync_id_var.reset(token)


_RESERVED_FIELDS = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
}


class StructuredJSONFormatter(logging.Formatter):
    """
    Formateador de logs en JSON.

    Añade el sync_id activo y cualquier campo pasado con `extra=`.
    Los modelos Pydantic se serializan con model_dump.
    """

    def _serialize_value(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, dict):
            return {str(k): self._serialize_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._serialize_value(v) for v in value]
        if isinstance(value, datetime):
            return value.isoformat()
        if hasattr(value, "model_dump"):
            return self._serialize_value(value.model_dump())
        return str(value)

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "line": record.lineno,
        }

        sync_id = get_sync_id()
        if sync_id:
            log_data["sync_id"] = sync_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_FIELDS and not key.startswith("_"):
                log_data[key] = self._serialize_value(value)

        return json.dumps(log_data, ensure_ascii=False)


class SyncIdFilter(logging.Filter):
    """Copia el sync_id activo al registro para los formatos de texto."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sync_id = get_sync_id() or "-"
        return True


def setup_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    logger_name: str = "ubicador"
) -> logging.Logger:
    """
    Configura el logging del paquete.

    Args:
        level: Nivel de logging (default: logging.INFO)
        json_format: Si es True, usa StructuredJSONFormatter
        logger_name: Nombre del logger raíz del proyecto

    Returns:
        logging.Logger: Logger configurado
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # Evitar duplicar manejadores si ya están configurados
    if not any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        handler = logging.StreamHandler()

        if json_format:
            formatter = StructuredJSONFormatter()
        else:
            handler.addFilter(SyncIdFilter())
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(sync_id)s] %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
