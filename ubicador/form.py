"""
LocationForm - las tres superficies conectadas a un Coordinator.
"""

import logging

import httpx

from .client import BackendClient
from .config import Settings
from .coordinator import LocationCoordinator
from .map import MapSurface
from .models import LocationRecord
from .search import SearchSurface


class LocationForm:
    """Búsqueda + mapa + desplegables sobre un único registro.

    - Selección en la búsqueda → Coordinator.update_from_search
    - Click/arrastre en el mapa → Coordinator.update_from_map
    - Cambios del registro → marcador del mapa (sin volver a notificar)

    Example:
        async with LocationForm(Settings.from_env()) as form:
            await form.start()
            await form.map.click(18.4861, -69.8601)
            print(form.record)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        initial: LocationRecord | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger=None,
    ):
        """
        Args:
            settings: Configuración (Settings() por defecto)
            initial: Registro inicial a hidratar
            http_client: Cliente httpx externo opcional. El formulario NO lo
                         cierra; el usuario es responsable.
            logger: Logger opcional
        """
        self.settings = settings or Settings()
        self.log = logger or logging.getLogger("ubicador")
        self.backend = BackendClient(
            self.settings.api_url,
            default_timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
            verify_ssl=self.settings.verify_ssl,
            http_client=http_client,
        )
        self.coordinator = LocationCoordinator.from_backend(self.backend, self.settings, initial=initial)
        self.search = SearchSurface(self.coordinator.gateway, on_select=self.coordinator.update_from_search)
        self.map = MapSurface(on_location_change=self.coordinator.update_from_map)
        self.coordinator.subscribe(self._on_record)
        self.map.show_position(self.coordinator.record.lat, self.coordinator.record.lng)

    @property
    def record(self) -> LocationRecord:
        return self.coordinator.record

    async def start(self) -> None:
        """Carga el catálogo inicial y el primer token de búsqueda."""
        await self.coordinator.start()
        await self.search.start()

    def _on_record(self, record: LocationRecord) -> None:
        self.map.show_position(record.lat, record.lng)

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> "LocationForm":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
