"""
Cliente del servicio de match de nombres geocodificados contra el catálogo.

El algoritmo de coincidencia difusa vive en el backend; aquí solo se consume
su contrato: nombres libres → entradas del catálogo + nivel + confianza.
"""

import logging
import time

from pydantic import ValidationError

from .client import BackendClient
from .exceptions import ServiceError
from .models import GeocodedComponents, MatchResult


class Matcher:
    """Resuelve componentes geocodificados contra el catálogo.

    El servicio intenta cada nivel por separado (puede devolver provincia
    aunque fallen ciudad y sector) y nunca inventa un nivel más profundo del
    que soportan sus datos. MatchResult valida esas garantías al parsear.
    """

    def __init__(self, backend: BackendClient, logger=None):
        self.backend = backend
        self.log = logger or logging.getLogger("ubicador.matcher")

    async def match(self, components: GeocodedComponents) -> MatchResult:
        """Devuelve el MatchResult para los nombres dados.

        Sin ningún nombre no se llama al servicio: el resultado es `none`.

        Raises:
            ServiceError: fallo del backend o respuesta no interpretable
            MatchError: respuesta con niveles sin ancestros
        """
        body = components.to_api()
        if not any(body.values()):
            return MatchResult.empty()

        start_time = time.time()
        payload = await self.backend.post("/geocoding/match-ubicacion", body)
        result = self.parse(payload)
        elapsed = (time.time() - start_time) * 1000

        self.log.info(
            "[NETWORK_REQ] match: %s | Nivel: %s | Confianza: %s | Tiempo: %.2fms",
            " / ".join(v for v in body.values() if v), result.match_level, result.confidence, elapsed
        )
        return result

    @staticmethod
    def parse(payload) -> MatchResult:
        if payload is None:
            return MatchResult.empty()
        try:
            return MatchResult.model_validate(payload)
        except ValidationError as e:
            raise ServiceError(
                "Respuesta de match inválida",
                details={"errors": e.error_count()}
            ) from e
