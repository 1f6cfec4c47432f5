"""
SearchSurface - caja de búsqueda con autocompletado
===================================================

Modelo sin interfaz de la caja de búsqueda: el host le pasa los eventos
(teclear, teclas, foco, clicks) y lee su estado (texto, sugerencias,
índice resaltado, lista abierta) para pintarlo.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .exceptions import ServiceError
from .gateway import GeocodeGateway
from .models import GeocodedCandidate, PlacePrediction, SessionToken

OnSelect = Callable[[GeocodedCandidate], Awaitable[object]]


class SearchSurface:
    """Autocompletado con debounce, token de sesión y navegación por teclado.

    Example:
        search = SearchSurface(gateway, on_select=coordinator.update_from_search)
        await search.start()
        await search.type_text("Los Mina")
        await search.press_key("ArrowDown")
        await search.press_key("Enter")

    Attributes:
        text: Texto escrito
        predictions: Sugerencias visibles
        highlighted: Índice resaltado (-1 si ninguno)
        is_open: Si la lista de sugerencias está desplegada
        loading: Si hay una petición en curso
    """

    def __init__(
        self,
        gateway: GeocodeGateway,
        on_select: OnSelect | None = None,
        debounce: float = 0.15,
        min_chars: int = 3,
        blur_grace: float = 0.2,
        logger=None,
    ):
        self.gateway = gateway
        self.on_select = on_select
        self.debounce = debounce
        self.min_chars = min_chars
        self.blur_grace = blur_grace
        self.log = logger or logging.getLogger("ubicador.search")

        self.text = ""
        self.predictions: list[PlacePrediction] = []
        self.highlighted = -1
        self.is_open = False
        self.loading = False
        self.token: SessionToken | None = None

        self._request_seq = 0
        self._debounce_task: asyncio.Task | None = None
        self._blur_timer: asyncio.TimerHandle | None = None

    async def start(self) -> SessionToken:
        """Obtiene el primer token de sesión."""
        self.token = await self.gateway.new_session_token()
        return self.token

    # =========================================================================
    # Texto y autocompletado
    # =========================================================================

    async def type_text(self, text: str) -> None:
        """Actualiza el texto y programa la búsqueda tras el debounce.

        Con menos de `min_chars` caracteres se vacían las sugerencias.
        Espera a que termine la búsqueda programada salvo que otra
        pulsación la reemplace.
        """
        self.text = text
        self._cancel_debounce()
        # Cualquier respuesta anterior pasa a ser obsoleta
        self._request_seq += 1

        if len(text) < self.min_chars:
            self._close(clear=True)
            return

        task = asyncio.create_task(self._debounced_fetch(text, self._request_seq))
        self._debounce_task = task
        try:
            # wait() no propaga la cancelación de la tarea reemplazada
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not task.cancelled():
            task.result()

    async def _debounced_fetch(self, text: str, seq: int) -> None:
        await asyncio.sleep(self.debounce)
        if self.token is None:
            self.token = await self.gateway.new_session_token()

        self.loading = True
        try:
            predictions = await self.gateway.autocomplete(text, self.token)
        except ServiceError as e:
            self.log.error("Error obteniendo sugerencias para %r: %s", text, e)
            if seq == self._request_seq:
                self.predictions = []
                self.is_open = False
            return
        finally:
            if seq == self._request_seq:
                self.loading = False

        if seq != self._request_seq:
            self.log.debug("Sugerencias obsoletas para %r descartadas", text)
            return

        self.predictions = predictions
        self.is_open = bool(predictions)
        self.highlighted = -1

    def clear(self) -> None:
        """Botón de limpiar: vacía texto y sugerencias."""
        self._cancel_debounce()
        self._request_seq += 1
        self.text = ""
        self._close(clear=True)

    # =========================================================================
    # Teclado, foco y clicks
    # =========================================================================

    async def press_key(self, key: str) -> None:
        """ArrowDown/ArrowUp/Enter/Escape sobre la lista abierta."""
        if not self.is_open or not self.predictions:
            return

        last = len(self.predictions) - 1
        if key == "ArrowDown":
            self.highlighted = min(self.highlighted + 1, last)
        elif key == "ArrowUp":
            self.highlighted = max(self.highlighted - 1, 0)
        elif key == "Enter":
            if 0 <= self.highlighted <= last:
                await self.select(self.predictions[self.highlighted])
        elif key == "Escape":
            # Cierra sin borrar lo escrito
            self._close()

    def click_outside(self) -> None:
        """Click fuera del conjunto caja + lista: cierra de inmediato."""
        self._close()

    def blur(self) -> None:
        """Pérdida de foco: cierra tras un margen para no pisar un click en la lista."""
        self._cancel_blur()
        self._blur_timer = asyncio.get_running_loop().call_later(self.blur_grace, self._close)

    def focus(self) -> None:
        self._cancel_blur()

    # =========================================================================
    # Selección
    # =========================================================================

    async def select(self, prediction: PlacePrediction) -> GeocodedCandidate | None:
        """Resuelve la sugerencia y entrega el candidato al Coordinator.

        Tras una selección resuelta se pide un token nuevo: el token cubre un
        único ciclo búsqueda → selección.
        """
        self._close()
        self._request_seq += 1
        self.text = prediction.description
        token = self.token or await self.gateway.new_session_token()

        self.loading = True
        try:
            candidate = await self.gateway.place_details(prediction.place_id, token)
        except ServiceError as e:
            self.log.error("Error obteniendo detalles de %s: %s", prediction.place_id, e)
            return None
        finally:
            self.loading = False

        self.token = await self.gateway.new_session_token()
        if self.on_select is not None:
            await self.on_select(candidate)
        return candidate

    def _close(self, clear: bool = False) -> None:
        self._cancel_blur()
        self.is_open = False
        self.highlighted = -1
        if clear:
            self.predictions = []

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    def _cancel_blur(self) -> None:
        if self._blur_timer is not None:
            self._blur_timer.cancel()
            self._blur_timer = None
