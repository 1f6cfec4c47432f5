"""
GeocodeGateway - llamadas de geocodificación al backend
=======================================================

Envuelve el autocompletado con session token, el detalle de lugar, el
reverse geocode (con match incluido) y la geocodificación directa por nombre.
"""

import logging
import time

from pydantic import ValidationError

from .client import BackendClient
from .exceptions import CoordinateError, ParsingError, ServiceError
from .matcher import Matcher
from .models import GeocodedCandidate, MatchResult, PlacePrediction, SessionToken
from .models.geocoding import validate_wgs84


class GeocodeGateway:
    """Fachada de las operaciones de geocodificación.

    Example:
        gateway = GeocodeGateway(backend)
        token = await gateway.new_session_token()
        predictions = await gateway.autocomplete("Los Mina", token)
        candidate = await gateway.place_details(predictions[0].place_id, token)
    """

    def __init__(self, backend: BackendClient, country_restriction: str = "do", logger=None):
        self.backend = backend
        self.country_restriction = country_restriction
        self.log = logger or logging.getLogger("ubicador.gateway")

    async def new_session_token(self) -> SessionToken:
        """Pide un token de sesión; si falla, genera uno local.

        Nunca lanza: el flujo de búsqueda no debe bloquearse por esta dependencia.
        """
        try:
            data = await self.backend.post("/geocoding/session-token")
            value = (data or {}).get("sessionToken")
            if value:
                return SessionToken(value=str(value))
            self.log.warning("session-token sin sessionToken; se usa token local")
        except ServiceError as e:
            self.log.warning("No se pudo obtener session token (%s); se usa token local", e)
        return SessionToken.local()

    async def autocomplete(self, text: str, token: SessionToken) -> list[PlacePrediction]:
        """Sugerencias para un texto parcial.

        Las filas mal formadas se descartan con un aviso en el log.

        Raises:
            ServiceError: fallo del backend o payload sin lista de sugerencias
        """
        start_time = time.time()
        data = await self.backend.post(
            "/geocoding/autocomplete",
            {"input": text, "sessionToken": token.value, "countryRestriction": self.country_restriction},
        )
        rows = data.get("predictions") if isinstance(data, dict) else data
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise ServiceError(
                "Respuesta de autocompletado con formato inesperado",
                details={"type": type(rows).__name__}
            )
        predictions = []
        for row in rows:
            if not isinstance(row, dict):
                self.log.warning("Sugerencia descartada: %r", row)
                continue
            try:
                predictions.append(PlacePrediction.from_api(row))
            except (ParsingError, ValidationError) as e:
                self.log.warning("Sugerencia descartada (%s): %s", e, row)
        elapsed = (time.time() - start_time) * 1000
        self.log.info(
            "[NETWORK_REQ] autocomplete: %s | Results: %d | Time: %.2fms",
            text, len(predictions), elapsed
        )
        return predictions

    async def place_details(self, place_id: str, token: SessionToken) -> GeocodedCandidate:
        """Resuelve una sugerencia a un candidato con coordenadas y componentes.

        Raises:
            ServiceError: fallo del backend o payload sin coordenadas
        """
        data = await self.backend.post(
            "/geocoding/place-details", {"placeId": place_id, "sessionToken": token.value}
        )
        return self._candidate(data, context={"place_id": place_id})

    async def reverse_with_match(self, lat: float, lng: float) -> tuple[GeocodedCandidate, MatchResult | None]:
        """Reverse geocode de un punto más el match ya calculado por el backend.

        El candidato conserva exactamente el punto pedido (el del marcador),
        no el que devuelva el proveedor.

        Raises:
            CoordinateError: lat/lng fuera de rango
            ServiceError: fallo del backend
        """
        lat, lng = validate_wgs84(lat, lng)
        data = await self.backend.post("/geocoding/reverse-with-match", {"lat": lat, "lng": lng}) or {}
        google = data.get("google")
        if not google:
            raise ServiceError(
                "Reverse geocode sin resultado",
                details={"lat": lat, "lng": lng}
            )
        candidate = self._candidate(google, lat=lat, lng=lng, context={"lat": lat, "lng": lng})
        match = Matcher.parse(data["ubicacion"]) if data.get("ubicacion") else None
        return candidate, match

    async def geocode(self, address: str) -> tuple[float, float] | None:
        """Geocodificación directa por nombre. None si no hay resultado."""
        if not address or not address.strip():
            raise ParsingError("La dirección a geocodificar no puede estar vacía")
        data = await self.backend.post("/geocoding/geocode", {"address": address}) or {}
        if data.get("lat") is None or data.get("lng") is None:
            self.log.info("geocode sin resultado: %s", address)
            return None
        return validate_wgs84(float(data["lat"]), float(data["lng"]))

    def _candidate(self, payload, lat=None, lng=None, context=None) -> GeocodedCandidate:
        if not isinstance(payload, dict):
            raise ServiceError("Respuesta de geocodificación vacía", details=context or {})
        try:
            return GeocodedCandidate.from_api(payload, lat=lat, lng=lng)
        except ValidationError as e:
            raise ServiceError(
                "Respuesta de geocodificación inválida",
                details={**(context or {}), "errors": e.error_count()}
            ) from e
        except CoordinateError as e:
            raise ServiceError(
                "Respuesta de geocodificación con coordenadas fuera de rango",
                details={**(context or {}), **e.details}
            ) from e
