import random
import string
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..exceptions import CoordinateError, ParsingError
from .catalog import Level


def validate_wgs84(lat: float, lng: float) -> tuple[float, float]:
    """Comprueba que el par lat/lng esté en rango WGS84."""
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        raise CoordinateError(
            "Las coordenadas deben ser numéricas",
            details={"lat_type": type(lat).__name__, "lng_type": type(lng).__name__}
        )
    if not (-90 <= lat <= 90):
        raise CoordinateError("Latitud fuera de rango (-90, 90)", details={"lat": lat})
    if not (-180 <= lng <= 180):
        raise CoordinateError("Longitud fuera de rango (-180, 180)", details={"lng": lng})
    return float(lat), float(lng)


class GeocodedComponents(BaseModel):
    """Nombres libres devueltos por el proveedor de geocodificación."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    country: str | None = Field(None, alias="pais")
    province: str | None = Field(None, alias="provincia")
    city: str | None = Field(None, alias="ciudad")
    sector: str | None = Field(None, alias="sector")

    @field_validator("country", "province", "city", "sector", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def name_at(self, level: Level) -> str | None:
        return getattr(self, _COMPONENT_FIELDS[level])

    def to_api(self) -> dict[str, str | None]:
        """Cuerpo para POST /geocoding/match-ubicacion."""
        return {level.value: self.name_at(level) for level in _COMPONENT_FIELDS}


_COMPONENT_FIELDS: dict[Level, str] = {
    Level.PAIS: "country",
    Level.PROVINCIA: "province",
    Level.CIUDAD: "city",
    Level.SECTOR: "sector",
}


class GeocodedCandidate(BaseModel):
    """Resultado crudo de un proveedor (autocompletado o reverse geocode).

    Se produce de forma transitoria y el Coordinator lo consume una sola vez.
    """
    model_config = ConfigDict(frozen=True)

    formatted_address: str = ""
    place_id: str | None = None
    lat: float
    lng: float
    components: GeocodedComponents = Field(default_factory=GeocodedComponents)
    postal_code: str | None = None
    types: tuple[str, ...] = ()

    @model_validator(mode="after")
    def validate_coordinates(self) -> "GeocodedCandidate":
        validate_wgs84(self.lat, self.lng)
        return self

    @classmethod
    def from_api(cls, payload: dict[str, Any], lat: float | None = None, lng: float | None = None) -> "GeocodedCandidate":
        """Crea un candidato a partir de un GeocodedAddress del backend.

        `lat`/`lng` explícitos (p. ej. el punto clicado en el mapa) tienen
        prioridad sobre los del payload.
        """
        return cls(
            formatted_address=payload.get("formatted_address") or "",
            place_id=payload.get("place_id"),
            lat=lat if lat is not None else payload.get("lat"),
            lng=lng if lng is not None else payload.get("lng"),
            components=GeocodedComponents.model_validate(payload),
            postal_code=payload.get("codigo_postal"),
            types=tuple(payload.get("types") or ()),
        )


class PlacePrediction(BaseModel):
    """Sugerencia del autocompletado."""
    model_config = ConfigDict(frozen=True)

    place_id: str
    description: str
    main_text: str = ""
    secondary_text: str = ""
    types: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "PlacePrediction":
        if not row.get("place_id"):
            raise ParsingError(
                "Sugerencia sin place_id",
                details={"keys": sorted(row.keys())}
            )
        formatting = row.get("structured_formatting") or {}
        return cls(
            place_id=row["place_id"],
            description=row.get("description", ""),
            main_text=formatting.get("main_text", ""),
            secondary_text=formatting.get("secondary_text", ""),
            types=tuple(row.get("types") or ()),
        )


class SessionToken(BaseModel):
    """Token de sesión del autocompletado.

    Vive un ciclo búsqueda → selección y se pasa explícitamente a cada
    llamada; tras cada selección resuelta se emite uno nuevo.
    """
    model_config = ConfigDict(frozen=True)

    value: str
    issued_locally: bool = False

    @classmethod
    def local(cls) -> "SessionToken":
        """Token generado localmente cuando el backend no puede emitirlo."""
        alphabet = string.ascii_lowercase + string.digits
        suffix = "".join(random.choices(alphabet, k=13))
        return cls(value=f"{int(time.time() * 1000)}-{suffix}", issued_locally=True)

    def __str__(self) -> str:
        return self.value
