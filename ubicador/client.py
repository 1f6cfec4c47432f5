"""
Cliente HTTP asíncrono para el backend de ubicaciones y geocodificación.

Todas las llamadas del motor (catálogo, autocompletado, reverse geocode,
match) pasan por aquí. Los errores transitorios se reintentan con backoff
exponencial; los 4xx no.
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from .exceptions import (
    ServiceConnectionError,
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
)

log = logging.getLogger("ubicador.client")


class BackendClient:
    """Cliente JSON sobre httpx.AsyncClient con reintentos.

    Attributes:
        url: URL base del backend (incluye /api)
        timeout: Timeout en segundos por intento
        client: httpx.AsyncClient en uso (propio o inyectado)

    Example:
        async with BackendClient("http://localhost:3001/api") as backend:
            data = await backend.get("/ubicaciones/paises")
    """

    def __init__(
        self,
        url: str,
        default_timeout: float = 5,
        max_retries: int = 3,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 10.0,
        retry_on_5xx: bool = True,
        verify_ssl: bool = True,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Configura la conexión.

        Args:
            url: URL base del backend
            default_timeout: Timeout en segundos (default: 5)
            max_retries: Reintentos tras el primer intento (default: 3)
            retry_base_delay: Delay inicial del backoff (segundos)
            retry_max_delay: Delay máximo entre reintentos (segundos)
            retry_on_5xx: Reintentar en respuestas 5xx
            verify_ssl: Verificar certificados SSL
            http_client: Cliente externo opcional. No se cierra en close();
                         el propietario es quien lo creó.
        """
        self.url = url.rstrip("/")
        self.timeout = default_timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.retry_on_5xx = retry_on_5xx
        self.last_request: str | None = None
        self._closed = False

        if http_client is not None:
            self.client = http_client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(timeout=default_timeout, verify=verify_ssl)
            self._owns_client = True

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Delay exponencial (base * 2^attempt) con ±10% de jitter, acotado."""
        delay = self.retry_base_delay * (2 ** attempt)
        delay *= random.uniform(0.9, 1.1)
        return min(delay, self.retry_max_delay)

    async def get(self, path: str, **params: Any) -> Any:
        return await self.request("GET", path, params={k: v for k, v in params.items() if v is not None})

    async def post(self, path: str, payload: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", path, json=payload or {})

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Ejecuta la petición con reintentos y devuelve el JSON parseado.

        Raises:
            ServiceTimeoutError: si todos los intentos exceden el timeout
            ServiceConnectionError: si no se puede conectar tras los reintentos
            ServiceHTTPError: respuesta 4xx, o 5xx tras agotar reintentos
            ServiceError: respuesta que no es JSON
        """
        if self._closed:
            raise ServiceConnectionError("El cliente del backend está cerrado", details={"path": path})

        url = f"{self.url}/{path.lstrip('/')}"
        self.last_request = f"{method} {url}"
        attempts = self.max_retries + 1
        last_exc: Exception | None = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(method, url, timeout=self.timeout, **kwargs)
            except httpx.TimeoutException as e:
                last_exc = e
                log.warning("Timeout en %s %s (intento %d/%d)", method, url, attempt + 1, attempts)
            except httpx.TransportError as e:
                last_exc = e
                log.warning("Error de conexión en %s %s (intento %d/%d): %s", method, url, attempt + 1, attempts, e)
            else:
                if response.status_code >= 500 and self.retry_on_5xx and attempt + 1 < attempts:
                    log.warning("HTTP %d en %s %s (intento %d/%d)", response.status_code, method, url, attempt + 1, attempts)
                    last_exc = None
                    await asyncio.sleep(self._calculate_backoff_delay(attempt))
                    continue
                return self._parse_response(response, url, attempt + 1)

            if attempt + 1 < attempts:
                await asyncio.sleep(self._calculate_backoff_delay(attempt))

        if isinstance(last_exc, httpx.TimeoutException):
            raise ServiceTimeoutError(
                f"Timeout después de {self.timeout}s ({attempts} intentos)",
                url=url,
                details={"timeout": self.timeout, "attempts": attempts},
            ) from last_exc
        raise ServiceConnectionError(
            f"Error de conexión tras {attempts} intentos",
            url=url,
            details={"error": str(last_exc)},
        ) from last_exc

    @staticmethod
    def _parse_response(response: httpx.Response, url: str, attempts: int) -> Any:
        if response.status_code >= 400:
            suffix = f" tras {attempts} intentos" if response.status_code >= 500 and attempts > 1 else ""
            raise ServiceHTTPError(
                f"Error HTTP {response.status_code}{suffix}",
                url=url,
                status_code=response.status_code,
                response_text=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(
                f"Error parseando respuesta JSON: {e}",
                url=url,
                details={"status_code": response.status_code},
            ) from e

    def last_sent(self) -> str | None:
        """Última petición ejecutada (útil para debug)."""
        return self.last_request

    async def close(self) -> None:
        """Cierra el cliente httpx si es propio."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False
