"""
LoopGuard - máquina de estados contra bucles de actualización.

Cuando el mapa o la búsqueda fijan una ubicación, el Coordinator aplica la
cascada país → sector. Las cargas de listas que provoca esa cascada no deben
re-derivar selecciones por su cuenta (p. ej. restaurar por nombre) mientras
se aplica, y una edición manual de un desplegable no debe pelearse con un
evento del mapa. Los flags son consultivos: nadie espera por ellos.

Estados:
    IDLE -> EXTERNAL_SYNC | MANUAL_EDIT | CASCADE_LOADING -> IDLE

Se sale del estado al terminar la corrutina protegida. Si esa corrutina nunca
termina (una llamada de red colgada), un temporizador de seguridad fuerza la
vuelta a IDLE para que la interfaz no quede bloqueada.
"""

import asyncio
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator


class GuardState(str, Enum):
    IDLE = "idle"
    EXTERNAL_SYNC = "external_sync"
    MANUAL_EDIT = "manual_edit"
    CASCADE_LOADING = "cascade_loading"


class LoopGuard:
    """Guard con tickets: solo el último en entrar puede liberar.

    Example:
        guard = LoopGuard(timeout=2.0)
        with guard.external_sync():
            await apply_match(...)
        assert guard.state is GuardState.IDLE
    """

    def __init__(self, timeout: float = 2.0, logger=None):
        self.timeout = timeout
        self.log = logger or logging.getLogger("ubicador.guard")
        self._state = GuardState.IDLE
        self._ticket = 0
        self._timer: asyncio.TimerHandle | None = None
        self._expire_listeners: list[Callable[[GuardState], None]] = []

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def external_sync_in_flight(self) -> bool:
        return self._state is GuardState.EXTERNAL_SYNC

    @property
    def manual_edit_in_flight(self) -> bool:
        return self._state is GuardState.MANUAL_EDIT

    @property
    def idle(self) -> bool:
        return self._state is GuardState.IDLE

    def on_expire(self, callback: Callable[[GuardState], None]) -> None:
        """Registra un callback que recibe el estado liberado por timeout."""
        self._expire_listeners.append(callback)

    @contextmanager
    def hold(self, state: GuardState) -> Iterator[int]:
        """Mantiene `state` mientras dura el bloque; devuelve el ticket."""
        ticket = self._enter(state)
        try:
            yield ticket
        finally:
            self._leave(ticket)

    def external_sync(self):
        return self.hold(GuardState.EXTERNAL_SYNC)

    def manual_edit(self):
        return self.hold(GuardState.MANUAL_EDIT)

    def cascade_loading(self):
        return self.hold(GuardState.CASCADE_LOADING)

    def holds(self, ticket: int) -> bool:
        """True si `ticket` sigue siendo el dueño del guard."""
        return ticket == self._ticket and self._state is not GuardState.IDLE

    def _enter(self, state: GuardState) -> int:
        if state is GuardState.IDLE:
            raise ValueError("No se puede retener el estado IDLE")
        if self._state is not GuardState.IDLE:
            self.log.debug("Guard %s reemplazado por %s", self._state.value, state.value)
        self._cancel_timer()
        self._ticket += 1
        self._state = state
        ticket = self._ticket
        self._timer = asyncio.get_running_loop().call_later(self.timeout, self._expire, ticket)
        return ticket

    def _leave(self, ticket: int) -> None:
        if ticket != self._ticket:
            # Otra operación más reciente tomó el guard
            return
        self._cancel_timer()
        self._state = GuardState.IDLE

    def _expire(self, ticket: int) -> None:
        self._timer = None
        if ticket != self._ticket or self._state is GuardState.IDLE:
            return
        released = self._state
        self.log.warning(
            "Guard %s liberado por timeout (%.1fs)", released.value, self.timeout
        )
        self._state = GuardState.IDLE
        for callback in self._expire_listeners:
            callback(released)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
