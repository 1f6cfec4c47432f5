"""
Acceso al catálogo jerárquico de ubicaciones (país → provincia → ciudad → sector).
"""

import logging
import time

from pydantic import ValidationError

from .client import BackendClient
from .exceptions import ParsingError, ServiceError
from .models import CatalogEntry, Level
from .models.catalog import LIST_KEYS
from .utils.cache import LRUCache


class CatalogStore:
    """Obtiene las listas del catálogo por id del padre.

    Es petición/respuesta pura; las listas se cachean por (nivel, padre).
    La lista de países es global (padre None).

    Example:
        store = CatalogStore(backend)
        paises = await store.children(Level.PAIS)
        provincias = await store.children(Level.PROVINCIA, paises[0].id)
    """

    def __init__(self, backend: BackendClient, cache_size: int = 256, cache_ttl: float = 3600, logger=None):
        self.backend = backend
        self._cache: LRUCache[tuple[CatalogEntry, ...]] = LRUCache(maxsize=cache_size, ttl=cache_ttl)
        self.log = logger or logging.getLogger("ubicador.catalog")

    async def children(self, level: Level, parent_id: str | None = None, use_cache: bool = True) -> list[CatalogEntry]:
        """Lista de entradas de `level` cuyo padre es `parent_id`.

        Args:
            level: Nivel a cargar
            parent_id: Id del padre (obligatorio salvo para países)
            use_cache: Si es True, consulta y rellena la caché

        Returns:
            list[CatalogEntry]: Entradas en el orden del backend

        Raises:
            ParsingError: nivel sin padre o payload sin la lista esperada
            ServiceError: fallo de red o HTTP
        """
        level = Level.parse(level)
        if level is not Level.PAIS and not parent_id:
            raise ParsingError(
                "Se necesita el id del padre para cargar el nivel",
                details={"level": level.value}
            )

        key = (level.value, parent_id if level is not Level.PAIS else None)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                self.log.debug("[CACHE_HIT] %s/%s", level.value, parent_id)
                return list(cached)

        start_time = time.time()
        payload = await self.backend.get(self._path(level, parent_id))
        entries = self._parse(level, payload)
        elapsed = (time.time() - start_time) * 1000
        self.log.info(
            "[NETWORK_REQ] %s/%s | Entradas: %d | Tiempo: %.2fms",
            level.value, parent_id or "-", len(entries), elapsed
        )

        if use_cache:
            self._cache.set(key, tuple(entries))
        return entries

    async def countries(self) -> list[CatalogEntry]:
        return await self.children(Level.PAIS)

    async def provinces(self, country_id: str) -> list[CatalogEntry]:
        return await self.children(Level.PROVINCIA, country_id)

    async def cities(self, province_id: str) -> list[CatalogEntry]:
        return await self.children(Level.CIUDAD, province_id)

    async def sectors(self, city_id: str) -> list[CatalogEntry]:
        return await self.children(Level.SECTOR, city_id)

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _path(level: Level, parent_id: str | None) -> str:
        resource = LIST_KEYS[level]
        if level is Level.PAIS:
            return f"/ubicaciones/{resource}"
        return f"/ubicaciones/{resource}/{parent_id}"

    @staticmethod
    def _parse(level: Level, payload) -> list[CatalogEntry]:
        key = LIST_KEYS[level]
        if isinstance(payload, list):
            rows = payload
        elif isinstance(payload, dict):
            rows = payload.get(key) or []
        else:
            raise ServiceError(
                "Respuesta del catálogo con formato inesperado",
                details={"level": level.value, "type": type(payload).__name__}
            )
        try:
            return [CatalogEntry.from_api(row, default_type=level) for row in rows]
        except ValidationError as e:
            raise ServiceError(
                "Fila de catálogo inválida",
                details={"level": level.value, "errors": e.error_count()}
            ) from e
