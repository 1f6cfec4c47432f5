"""
LocationCoordinator - sincronización de búsqueda, mapa y desplegables
=====================================================================

Posee el registro canónico (LocationRecord) y la tabla de selecciones
pendientes, y mantiene coherentes las tres superficies:

    Búsqueda (autocompletado) ─┐
                               ├─> candidato ─> Matcher ─> cascada de desplegables
    Mapa (click/arrastre) ─────┘      (reverse geocode)

    Desplegables ─> registro directamente (sin Matcher), vaciando descendientes

Cada sincronización recibe un número de secuencia. Tras cada espera de red se
comprueba que siga siendo la última; si no, su resultado se descarta. Una
edición manual de un desplegable también invalida la sincronización en curso.
"""

import logging
from typing import Callable

from .catalog import CatalogStore
from .client import BackendClient
from .config import Settings
from .exceptions import CoordinateError, MatchError, ServiceError
from .gateway import GeocodeGateway
from .guard import GuardState, LoopGuard
from .matcher import Matcher
from .models import (
    LEVELS,
    GeocodedCandidate,
    Level,
    LocationRecord,
    MatchResult,
)
from .models.geocoding import validate_wgs84
from .selector import CascadingSelector, PendingSelections
from .status import REVERSE_FAILED, SYNC_FAILED, StatusBoard, describe_match
from .utils.logging import sync_context

RecordListener = Callable[[LocationRecord], None]


class LocationCoordinator:
    """Orquestador del registro de ubicación.

    Example:
        async with BackendClient(settings.api_url) as backend:
            coordinator = LocationCoordinator.from_backend(backend)
            coordinator.subscribe(lambda record: print(record.to_api()))
            await coordinator.start()
            await coordinator.update_from_map(18.4861, -69.8601)

    Attributes:
        record: Copia del registro canónico actual
        selector: Desplegables en cascada
        status: Mensaje de estado visible
        guard: Guard contra bucles de actualización
    """

    def __init__(
        self,
        catalog: CatalogStore,
        gateway: GeocodeGateway,
        matcher: Matcher,
        initial: LocationRecord | None = None,
        status_ttl: float = 8.0,
        guard_timeout: float = 2.0,
        logger=None,
    ):
        if logger:
            self.log = logger
        else:
            self.log = logging.getLogger("ubicador.coordinator")
            self.log.addHandler(logging.NullHandler())

        self.gateway = gateway
        self.matcher = matcher
        self.guard = LoopGuard(timeout=guard_timeout)
        self.pending = PendingSelections()
        self.selector = CascadingSelector(catalog, self.guard, self.pending)
        self.status = StatusBoard(ttl=status_ttl)

        self._record = (initial or LocationRecord()).normalized()
        self._listeners: list[RecordListener] = []
        self._seq = 0
        self._started = False

        self.guard.on_expire(self._on_guard_expired)

    @classmethod
    def from_backend(
        cls,
        backend: BackendClient,
        settings: Settings | None = None,
        initial: LocationRecord | None = None,
        logger=None,
    ) -> "LocationCoordinator":
        """Construye el coordinador y sus colaboradores sobre un mismo backend."""
        settings = settings or Settings()
        return cls(
            catalog=CatalogStore(backend, cache_ttl=settings.cache_ttl),
            gateway=GeocodeGateway(backend, country_restriction=settings.country_restriction),
            matcher=Matcher(backend),
            initial=initial,
            status_ttl=settings.status_ttl,
            guard_timeout=settings.guard_timeout,
            logger=logger,
        )

    # =========================================================================
    # Registro
    # =========================================================================

    @property
    def record(self) -> LocationRecord:
        return self._record.model_copy()

    def subscribe(self, callback: RecordListener) -> None:
        """Registra un callback que recibe una copia del registro en cada cambio."""
        self._listeners.append(callback)

    def _commit(self, record: LocationRecord) -> None:
        record = record.normalized()
        if record == self._record:
            return
        self._record = record
        for callback in self._listeners:
            callback(record.model_copy())

    def _names_from_selection(self, fallback: dict[Level, str | None] | None = None) -> dict[Level, str]:
        """Nombres de nivel según lo seleccionado; si falta, el nombre libre."""
        fallback = fallback or {}
        names = {}
        for level in LEVELS:
            entry = self.selector.selected(level)
            names[level] = entry.name if entry else (fallback.get(level) or "")
        return names

    def _catalog_id(self) -> str | None:
        deepest = self.selector.deepest_selected()
        return deepest.id if deepest else None

    # =========================================================================
    # Secuencia de sincronización
    # =========================================================================

    def _next_seq(self) -> int:
        self._seq += 1
        self.pending.clear()
        return self._seq

    def _is_current(self, seq: int) -> bool:
        return seq == self._seq

    def _on_guard_expired(self, released: GuardState) -> None:
        if self.pending:
            self.log.warning(
                "Guard %s caducado; se descartan %d selecciones pendientes",
                released.value, len(self.pending)
            )
        self.pending.clear()

    # =========================================================================
    # Arranque
    # =========================================================================

    async def start(self) -> None:
        """Carga los países e hidrata los desplegables desde el registro inicial.

        - Si el registro trae país, se selecciona por nombre y se restauran
          provincia, ciudad y sector por nombre según se cargan las listas.
        - Si no, y el catálogo tiene un único país, se selecciona solo.
        - Si no hay país pero sí coordenadas, se detecta por reverse geocode.
        """
        if self._started:
            return
        self._started = True

        with self.guard.cascade_loading():
            record = self._record
            await self.selector.load(Level.PAIS, hint=record.country or None)
            countries = self.selector.entries(Level.PAIS)

            if self.selector.selected(Level.PAIS) is None and len(countries) == 1:
                self.selector.select(Level.PAIS, countries[0].id)
                self.log.info("País seleccionado automáticamente: %s", countries[0].name)

            if self.selector.selected(Level.PAIS) is not None:
                for level in (Level.PAIS, Level.PROVINCIA, Level.CIUDAD):
                    if self.selector.selected(level) is None:
                        break
                    await self.selector.load_children(level, hint=record.name_at(level.child) or None)

        if self.selector.selected(Level.PAIS) is None and record.has_coordinates():
            self.log.info("Detectando ubicación inicial por coordenadas %s, %s", record.lat, record.lng)
            await self.update_from_map(record.lat, record.lng)
            return

        names = self._names_from_selection()
        self._commit(self._record.model_copy(update={
            "country": names[Level.PAIS] or record.country,
            "catalog_id": self._catalog_id() or record.catalog_id,
        }))

    # =========================================================================
    # Superficies externas: búsqueda y mapa
    # =========================================================================

    async def update_from_search(self, candidate: GeocodedCandidate) -> bool:
        """Aplica un candidato del autocompletado.

        La dirección y las coordenadas se confirman de inmediato; después se
        pide el match y se aplica la cascada. Si el match falla, las
        coordenadas quedan confirmadas y se muestra un aviso.

        Returns:
            bool: True si esta sincronización llegó a aplicarse entera
        """
        seq = self._next_seq()
        with sync_context(f"sync-{seq}"), self.guard.external_sync():
            return await self._sync(seq, candidate)

    async def update_from_map(self, lat: float, lng: float) -> bool:
        """Reverse geocode del punto del mapa y sincronización.

        Se ignora si hay una edición manual de desplegables en curso. Si el
        reverse geocode falla se confirman solo las coordenadas.

        Raises:
            CoordinateError: lat/lng fuera de rango WGS84
        """
        lat, lng = validate_wgs84(lat, lng)
        if self.guard.manual_edit_in_flight:
            self.log.info("Evento de mapa ignorado: edición manual en curso")
            return False

        seq = self._next_seq()
        with sync_context(f"sync-{seq}"), self.guard.external_sync():
            try:
                candidate, match = await self.gateway.reverse_with_match(lat, lng)
            except (ServiceError, MatchError) as e:
                self.log.error("Error en reverse geocode (%s, %s): %s", lat, lng, e)
                if self._is_current(seq):
                    self._commit(self._record.model_copy(update={"lat": lat, "lng": lng}))
                    self.status.warn(REVERSE_FAILED)
                return False

            if not self._is_current(seq):
                self.log.debug("Reverse geocode obsoleto; descartado")
                return False
            return await self._sync(seq, candidate, match)

    async def _sync(self, seq: int, candidate: GeocodedCandidate, match: MatchResult | None = None) -> bool:
        # Optimista: dirección y coordenadas antes de esperar al match
        self._commit(self._record.model_copy(update={
            "address": candidate.formatted_address or self._record.address,
            "lat": candidate.lat,
            "lng": candidate.lng,
        }))

        if match is None:
            try:
                match = await self.matcher.match(candidate.components)
            except (ServiceError, MatchError) as e:
                self.log.error("Error sincronizando ubicación: %s", e)
                if self._is_current(seq):
                    self.status.warn(SYNC_FAILED)
                return False
            if not self._is_current(seq):
                self.log.debug("Match obsoleto; descartado")
                return False

        matched = [f"{lvl.value}={match.entry(lvl).name}" for lvl in LEVELS if match.entry(lvl)]
        self.log.info(
            "Match: %s",
            " / ".join(matched) or "sin coincidencias",
            extra={"match_level": match.match_level, "confidence": match.confidence},
        )

        applied = await self.selector.apply_match(match, lambda: self._is_current(seq))
        if not applied or not self._is_current(seq):
            self.log.debug("Cascada obsoleta; descartada")
            return False

        components = candidate.components
        names = self._names_from_selection({lvl: components.name_at(lvl) for lvl in LEVELS})
        self._commit(self._record.with_names(names).model_copy(update={"catalog_id": self._catalog_id()}))
        self.status.show(describe_match(match, components))
        return True

    # =========================================================================
    # Desplegables y campo de texto
    # =========================================================================

    async def update_from_dropdown(self, level: Level | str, entry_id: str | None) -> LocationRecord:
        """Edición directa de un desplegable.

        Vacía selección y listas de los niveles inferiores, recalcula los
        nombres a partir de las entradas elegidas y fija catalog_id al nivel
        más profundo seleccionado. No llama al Matcher. Después carga la
        lista del nivel hijo para completar a mano.

        Un id vacío deselecciona el nivel.

        Raises:
            ParsingError: nivel desconocido o id que no está en la lista
        """
        level = Level.parse(level)
        # Invalida cualquier sincronización externa en vuelo
        seq = self._next_seq()

        with sync_context(f"edit-{seq}"), self.guard.manual_edit():
            if entry_id:
                entry = self.selector.select(level, entry_id)
            else:
                entry = None
                self.selector.deselect(level)
            if level.child is not None:
                self.selector.clear_from(level.child)

            names = self._names_from_selection()
            self._commit(self._record.with_names(names).model_copy(update={"catalog_id": self._catalog_id()}))
            self.log.info("Edición manual: %s = %s", level.value, entry.name if entry else "(vacío)")

            if entry is not None and level is Level.SECTOR:
                await self._move_to_sector(seq, entry)
            elif entry is not None:
                await self.selector.load_children(level)

        return self.record

    async def _move_to_sector(self, seq: int, sector) -> None:
        """Centra las coordenadas en el sector elegido a mano."""
        if sector.has_coordinates():
            coords = (sector.lat, sector.lng)
        else:
            parts = [sector.name] + [self._record.name_at(lvl) for lvl in (Level.CIUDAD, Level.PROVINCIA, Level.PAIS)]
            query = ", ".join(p for p in parts if p)
            try:
                coords = await self.gateway.geocode(query)
            except (ServiceError, CoordinateError) as e:
                self.log.warning("No se pudo geocodificar el sector %s: %s", sector.name, e)
                return
        if coords is None or not self._is_current(seq):
            return
        self._commit(self._record.model_copy(update={"lat": coords[0], "lng": coords[1]}))

    def update_freeform_address(self, text: str) -> LocationRecord:
        """Edición del texto de dirección. No reconcilia nada."""
        self._commit(self._record.model_copy(update={"address": text}))
        return self.record
