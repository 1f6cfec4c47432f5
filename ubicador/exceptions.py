"""
Jerarquía de excepciones de Ubicador.

Todas las excepciones heredan de UbicadorError, de modo que el host puede
capturar cualquier fallo de la librería con un solo except. Los fallos de red
nunca llegan al usuario final desde el Coordinator: se degradan a selección
manual. Solo los errores de programación (nivel desconocido, id que no existe
en la lista cargada) se propagan.
"""

from typing import Any, Dict, Optional

__all__ = [
    "UbicadorError",
    "ConfigurationError",
    "ParsingError",
    "CoordinateError",
    "MatchError",
    "ServiceError",
    "ServiceConnectionError",
    "ServiceTimeoutError",
    "ServiceHTTPError",
]


class UbicadorError(Exception):
    """Clase base para todas las excepciones de Ubicador.

    Attributes:
        message: Mensaje de error principal
        details: Diccionario opcional con contexto adicional del error
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        if self.details:
            return f"{class_name}(message={self.message!r}, details={self.details!r})"
        return f"{class_name}(message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Convierte la excepción a diccionario para serialización JSON.

        Returns:
            dict: Diccionario con type, message y details de la excepción
        """
        result = {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details.copy(),
        }

        if getattr(self, "url", None):
            result["url"] = self.url
        if getattr(self, "status_code", None) is not None:
            result["status_code"] = self.status_code
        if getattr(self, "response_text", None):
            result["response_text"] = self.response_text[:200]

        return result


class ConfigurationError(UbicadorError):
    """Error de configuración.

    Se lanza cuando una variable de entorno o un parámetro del constructor
    no tiene un valor utilizable (URL vacía, timeout negativo, etc.).

    Example:
        raise ConfigurationError(
            "UBICADOR_TIMEOUT debe ser un número positivo",
            details={"value": raw}
        )
    """
    pass


class ParsingError(UbicadorError):
    """Error al interpretar una entrada del host.

    - Nivel de catálogo desconocido
    - Id que no existe en la lista cargada del nivel
    - Payload del backend sin los campos obligatorios
    """
    pass


class CoordinateError(UbicadorError):
    """Coordenadas fuera del rango WGS84 o no numéricas."""
    pass


class MatchError(UbicadorError):
    """Resultado de match incoherente devuelto por el servicio.

    Se lanza cuando el resultado contiene un nivel sin sus ancestros
    (p. ej. un sector sin ciudad), lo que rompería el registro canónico.
    """
    pass


class ServiceError(UbicadorError):
    """Clase base para errores del backend (geocodificación o catálogo).

    Attributes:
        message: Mensaje de error
        details: Contexto adicional
        url: URL que causó el error (si está disponible)
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, url: Optional[str] = None):
        super().__init__(message, details)
        self.url = url
        if url:
            self.details["url"] = url


class ServiceConnectionError(ServiceError):
    """No se pudo establecer conexión con el backend.

    Example:
        raise ServiceConnectionError(
            "Error de conexión tras 4 intentos",
            url="http://localhost:3001/api/ubicaciones/paises"
        )
    """
    pass


class ServiceTimeoutError(ServiceError):
    """La petición excedió el tiempo máximo de espera."""
    pass


class ServiceHTTPError(ServiceError):
    """El backend respondió con un código de error HTTP.

    Attributes:
        status_code: Código de estado HTTP
        response_text: Texto de la respuesta del servidor
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ):
        super().__init__(message, details, url)
        self.status_code = status_code
        self.response_text = response_text

        if status_code is not None:
            self.details["status_code"] = status_code
        if response_text:
            self.details["response_text"] = response_text[:200]
