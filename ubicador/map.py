"""
MapSurface - marcador del mapa
==============================

Estado del marcador y del encuadre. Solo informa de (lat, lng) hacia arriba:
el reverse geocode y la conciliación con el catálogo son cosa del Coordinator.
"""

import logging
from typing import Awaitable, Callable

from .models.geocoding import validate_wgs84

OnLocationChange = Callable[[float, float], Awaitable[object]]

# Centro general de Santo Domingo, no un punto concreto
DEFAULT_LAT = 18.4861
DEFAULT_LNG = -69.9312
DEFAULT_ZOOM = 12
SELECTED_ZOOM = 16
LOCATE_ZOOM = 17


class MapSurface:
    """Marcador arrastrable sobre el mapa.

    No hay marcador hasta el primer click o hasta que llegan coordenadas
    desde fuera. Cada reubicación (click o fin de arrastre) se notifica
    siempre, aunque el punto no cambie.

    Attributes:
        marker: (lat, lng) del marcador o None
        center: Centro del encuadre
        zoom: Nivel de zoom
        disabled: Si es True se ignoran clicks y arrastres
    """

    def __init__(self, on_location_change: OnLocationChange | None = None, disabled: bool = False, logger=None):
        self.on_location_change = on_location_change
        self.disabled = disabled
        self.log = logger or logging.getLogger("ubicador.map")
        self.marker: tuple[float, float] | None = None
        self.center: tuple[float, float] = (DEFAULT_LAT, DEFAULT_LNG)
        self.zoom = DEFAULT_ZOOM

    @property
    def has_marker(self) -> bool:
        return self.marker is not None

    async def click(self, lat: float, lng: float) -> bool:
        """Click en el mapa: crea el marcador o lo mueve."""
        if self.disabled:
            return False
        created = self.marker is None
        self.marker = validate_wgs84(lat, lng)
        self.log.debug("Marcador %s en %s, %s", "creado" if created else "movido", lat, lng)
        await self._report()
        return True

    async def drag_end(self, lat: float, lng: float) -> bool:
        """Fin de arrastre del marcador."""
        if self.disabled or self.marker is None:
            return False
        self.marker = validate_wgs84(lat, lng)
        await self._report()
        return True

    async def locate_me(self, lat: float, lng: float) -> None:
        """Posición del dispositivo (geolocalización del navegador)."""
        self.marker = validate_wgs84(lat, lng)
        self.center = self.marker
        self.zoom = LOCATE_ZOOM
        await self._report()

    def show_position(self, lat: float | None, lng: float | None) -> None:
        """Coordenadas llegadas desde fuera (registro canónico). No notifica.

        Sin coordenadas válidas no se toca nada.
        """
        if lat is None or lng is None:
            return
        position = validate_wgs84(lat, lng)
        if self.marker is None:
            self.zoom = SELECTED_ZOOM
        self.marker = position
        self.center = position

    async def _report(self) -> None:
        if self.on_location_change is not None:
            lat, lng = self.marker
            await self.on_location_change(lat, lng)
