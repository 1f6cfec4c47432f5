"""
Mensajes de estado de la sincronización.

Son solo informativos y siempre caducan (8 s por defecto).
"""

import asyncio
import logging
import time
from typing import Callable, Literal

from pydantic import BaseModel

from .models import GeocodedComponents, Level, MatchResult

StatusKind = Literal["success", "info", "warning"]


class StatusMessage(BaseModel):
    message: str
    kind: StatusKind = "info"
    created_at: float = 0.0


def describe_match(match: MatchResult, components: GeocodedComponents) -> StatusMessage:
    """Mensaje para el par (match_level, confidence)."""
    entry = match.entry
    if match.match_level == "sector":
        sector = entry(Level.SECTOR).name
        if match.confidence == "exact":
            city = entry(Level.CIUDAD).name
            return StatusMessage(message=f"Ubicación completa: {city} → {sector}", kind="success")
        if match.confidence == "alias":
            return StatusMessage(
                message=f'Ubicación completa: "{components.sector or sector}" es "{sector}"',
                kind="success",
            )
        return StatusMessage(message=f"Ubicación completa: {sector} (coincidencia parcial)", kind="success")

    if match.match_level == "ciudad":
        missing = f' ("{components.sector}")' if components.sector else ""
        return StatusMessage(
            message=f"País, provincia y ciudad detectados. Sector no encontrado{missing} - selecciónalo del catálogo",
            kind="info",
        )
    if match.match_level == "provincia":
        return StatusMessage(
            message="País y provincia detectados. Selecciona ciudad y sector del catálogo",
            kind="warning",
        )
    if match.match_level == "pais":
        return StatusMessage(
            message="Solo se detectó el país. Selecciona provincia, ciudad y sector del catálogo",
            kind="warning",
        )
    return StatusMessage(
        message="Ubicación no encontrada en el catálogo. Selecciona manualmente",
        kind="warning",
    )


SYNC_FAILED = "Error al sincronizar la ubicación"
REVERSE_FAILED = "No se pudo obtener la dirección del punto. Selecciona la ubicación manualmente"


class StatusBoard:
    """Mensaje visible actual, con borrado automático tras `ttl` segundos."""

    def __init__(self, ttl: float = 8.0, logger=None):
        self.ttl = ttl
        self.log = logger or logging.getLogger("ubicador.status")
        self._current: StatusMessage | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._listeners: list[Callable[[StatusMessage | None], None]] = []

    @property
    def current(self) -> StatusMessage | None:
        return self._current

    def subscribe(self, callback: Callable[[StatusMessage | None], None]) -> None:
        self._listeners.append(callback)

    def show(self, status: StatusMessage) -> StatusMessage:
        """Muestra `status` y programa su borrado. Reemplaza al anterior."""
        self._cancel_timer()
        status = status.model_copy(update={"created_at": time.time()})
        self._current = status
        self.log.info("Estado [%s]: %s", status.kind, status.message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._timer = loop.call_later(self.ttl, self.clear)
        self._notify()
        return status

    def warn(self, message: str) -> StatusMessage:
        return self.show(StatusMessage(message=message, kind="warning"))

    def clear(self) -> None:
        self._cancel_timer()
        if self._current is None:
            return
        self._current = None
        self._notify()

    def _notify(self) -> None:
        for callback in self._listeners:
            callback(self._current)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
