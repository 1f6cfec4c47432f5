"""
CascadingSelector - los cuatro desplegables dependientes
========================================================

Cada nivel pasa por EMPTY (sin padre) → LOADING (el padre acaba de cambiar)
→ LOADED (lista disponible, cero o una selección). Cambiar el padre de un
nivel descarta su lista y su selección, y las de todos sus descendientes.

Las cargas llevan un número de secuencia por nivel: una respuesta que llega
después de que el nivel se haya vaciado o recargado se descarta.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

from .catalog import CatalogStore
from .exceptions import ParsingError, UbicadorError
from .guard import LoopGuard
from .models import LEVELS, CatalogEntry, Level, MatchResult


class LoadStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass
class LevelState:
    """Lista y selección de un nivel."""

    level: Level
    status: LoadStatus = LoadStatus.EMPTY
    parent_id: str | None = None
    entries: list[CatalogEntry] = field(default_factory=list)
    selected: CatalogEntry | None = None
    seq: int = 0
    error: str | None = None

    def find(self, entry_id: str) -> CatalogEntry | None:
        return next((e for e in self.entries if e.id == entry_id), None)

    def find_by_name(self, name: str) -> CatalogEntry | None:
        wanted = name.strip().casefold()
        return next((e for e in self.entries if e.name.strip().casefold() == wanted), None)

    def is_loaded_for(self, parent_id: str | None) -> bool:
        return self.status is LoadStatus.LOADED and self.parent_id == parent_id


class PendingSelections:
    """Tabla de selecciones diferidas: como mucho un id por nivel.

    Un id pendiente se aplica cuando termina de cargar la lista de su nivel.
    Se intenta una sola vez: si la lista no lo contiene se descarta.
    """

    def __init__(self):
        self._table: dict[Level, str] = {}

    def register(self, level: Level, catalog_id: str) -> None:
        self._table[level] = catalog_id

    def get(self, level: Level) -> str | None:
        return self._table.get(level)

    def pop(self, level: Level) -> str | None:
        return self._table.pop(level, None)

    def discard(self, *levels: Level) -> None:
        for level in levels:
            self._table.pop(level, None)

    def clear(self) -> None:
        self._table.clear()

    def items(self) -> Iterator[tuple[Level, str]]:
        return iter(list(self._table.items()))

    def __contains__(self, level: Level) -> bool:
        return level in self._table

    def __len__(self) -> int:
        return len(self._table)


class CascadingSelector:
    """Posee las cuatro listas y sus selecciones.

    La lista de países es global; las demás dependen del id del padre y se
    descartan cuando el padre cambia.
    """

    def __init__(self, store: CatalogStore, guard: LoopGuard, pending: PendingSelections, logger=None):
        self.store = store
        self.guard = guard
        self.pending = pending
        self.log = logger or logging.getLogger("ubicador.selector")
        self.levels: dict[Level, LevelState] = {level: LevelState(level) for level in LEVELS}

    # =========================================================================
    # Consultas
    # =========================================================================

    def state(self, level: Level | str) -> LevelState:
        return self.levels[Level.parse(level)]

    def entries(self, level: Level | str) -> list[CatalogEntry]:
        return list(self.state(level).entries)

    def selected(self, level: Level | str) -> CatalogEntry | None:
        return self.state(level).selected

    def selections(self) -> dict[Level, CatalogEntry | None]:
        return {level: self.levels[level].selected for level in LEVELS}

    def deepest_selected(self) -> CatalogEntry | None:
        """Selección más profunda de la cadena continua desde el país."""
        deepest = None
        for level in LEVELS:
            entry = self.levels[level].selected
            if entry is None:
                break
            deepest = entry
        return deepest

    # =========================================================================
    # Carga de listas
    # =========================================================================

    async def load(self, level: Level, parent_id: str | None = None, hint: str | None = None) -> bool:
        """Carga la lista de `level` para `parent_id` y resuelve lo pendiente.

        Args:
            level: Nivel a cargar
            parent_id: Id del padre (None para países)
            hint: Nombre a restaurar si no hay selección pendiente. Solo se usa
                  cuando no hay una sincronización externa en curso.

        Returns:
            bool: False si la respuesta llegó obsoleta y se descartó
        """
        state = self.levels[level]
        if level is not Level.PAIS and not parent_id:
            self.clear_from(level)
            return False

        self._reset(state, LoadStatus.LOADING, parent_id)
        for descendant in level.descendants():
            self._reset(self.levels[descendant], LoadStatus.EMPTY, None)
        seq = state.seq

        error = None
        try:
            entries = await self.store.children(level, parent_id)
        except UbicadorError as e:
            # La lista queda vacía; los niveles superiores siguen operativos
            self.log.error("Error cargando %s (padre %s): %s", level.value, parent_id, e)
            entries = []
            error = str(e)

        if state.seq != seq:
            self.log.debug("Carga de %s (padre %s) obsoleta; descartada", level.value, parent_id)
            return False

        state.entries = entries
        state.status = LoadStatus.LOADED
        state.error = error
        self._resolve_after_load(state, hint)
        return True

    def _resolve_after_load(self, state: LevelState, hint: str | None) -> None:
        level = state.level
        target = self.pending.pop(level)
        if target is not None:
            entry = state.find(target)
            if entry is not None:
                state.selected = entry
                self.log.debug("Pendiente de %s aplicado: %s", level.value, entry.name)
            else:
                self.log.warning(
                    "Id pendiente %s no está en la lista de %s (%d entradas); se descarta",
                    target, level.value, len(state.entries)
                )
            return

        if hint and not self.guard.external_sync_in_flight:
            entry = state.find_by_name(hint)
            if entry is not None:
                state.selected = entry
                self.log.debug("%s restaurado por nombre: %s", level.value, entry.name)

    async def load_children(self, level: Level, hint: str | None = None) -> bool:
        """Carga la lista del nivel hijo de la selección actual de `level`."""
        child = level.child
        if child is None:
            return False
        selected = self.levels[level].selected
        if selected is None:
            self.clear_from(child)
            return False
        return await self.load(child, selected.id, hint=hint)

    # =========================================================================
    # Selección
    # =========================================================================

    def select(self, level: Level | str, entry_id: str) -> CatalogEntry:
        """Selecciona una entrada de una lista ya cargada.

        Si la selección cambia, los descendientes se vacían.

        Raises:
            ParsingError: el nivel no está cargado o el id no está en la lista
        """
        level = Level.parse(level)
        state = self.levels[level]
        entry = state.find(entry_id) if state.status is LoadStatus.LOADED else None
        if entry is None:
            raise ParsingError(
                "El id no está en la lista cargada del nivel",
                details={"level": level.value, "id": entry_id, "status": state.status.value}
            )
        if state.selected is None or state.selected.id != entry.id:
            for descendant in level.descendants():
                self._reset(self.levels[descendant], LoadStatus.EMPTY, None)
            self.pending.discard(*level.descendants())
        state.selected = entry
        self.pending.discard(level)
        return entry

    def deselect(self, level: Level | str) -> None:
        """Quita la selección del nivel (conserva su lista) y vacía los descendientes."""
        level = Level.parse(level)
        self.levels[level].selected = None
        self.pending.discard(level, *level.descendants())
        for descendant in level.descendants():
            self._reset(self.levels[descendant], LoadStatus.EMPTY, None)

    def clear_from(self, level: Level) -> None:
        """Vacía lista y selección de `level` y de todos sus descendientes."""
        for current in (level, *level.descendants()):
            self._reset(self.levels[current], LoadStatus.EMPTY, None)
            self.pending.discard(current)

    @staticmethod
    def _reset(state: LevelState, status: LoadStatus, parent_id: str | None) -> None:
        # Subir la secuencia invalida cualquier carga en vuelo de este nivel
        state.seq += 1
        state.status = status
        state.parent_id = parent_id
        state.entries = []
        state.selected = None
        state.error = None

    # =========================================================================
    # Aplicación de un MatchResult
    # =========================================================================

    async def apply_match(self, match: MatchResult, is_current: Callable[[], bool]) -> bool:
        """Lleva los desplegables al estado que describe `match`, nivel a nivel.

        1. Nivel con entrada: se selecciona si la lista ya está cargada para
           ese padre; si no, queda pendiente y se carga la lista.
        2. La lista de cada nivel se carga en cuanto su padre está
           seleccionado, aunque no haya match a ese nivel, para completar a mano.
        3. Nivel sin entrada: sin selección en él ni por debajo; su lista se
           mantiene. Sin país en el match se conserva el país ya elegido.

        Args:
            match: Resultado del Matcher
            is_current: Devuelve False si la sincronización fue reemplazada
                        por otra más reciente mientras se esperaba la red

        Returns:
            bool: False si se abandonó por obsoleta
        """
        for level in LEVELS:
            wanted = match.entry(level)
            state = self.levels[level]

            if level is Level.PAIS:
                parent_id = None
            else:
                parent = self.levels[level.parent].selected
                if parent is None:
                    self.clear_from(level)
                    return True
                parent_id = parent.id

            if level is Level.PAIS and wanted is None:
                if state.selected is None:
                    self.clear_from(Level.PROVINCIA)
                    return True
                # Se conserva el país elegido; se limpia lo que cuelga de él
                child = self.levels[Level.PROVINCIA]
                if child.is_loaded_for(state.selected.id):
                    self.deselect(Level.PROVINCIA)
                    return True
                await self.load(Level.PROVINCIA, state.selected.id)
                return is_current()

            if state.is_loaded_for(parent_id):
                if wanted is None:
                    self.deselect(level)
                    return True
                if state.find(wanted.id) is None:
                    self.log.warning(
                        "%s %s (%s) no está en la lista cargada",
                        level.value, wanted.id, wanted.name
                    )
                    self.deselect(level)
                    return True
                self.select(level, wanted.id)
                continue

            if wanted is not None:
                self.pending.register(level, wanted.id)
            await self.load(level, parent_id)
            if not is_current():
                return False
            if wanted is None:
                return True

        return True
