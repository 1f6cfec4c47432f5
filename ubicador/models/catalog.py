from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ParsingError


class Level(str, Enum):
    """Niveles en cascada del catálogo, de más general a más específico."""

    PAIS = "pais"
    PROVINCIA = "provincia"
    CIUDAD = "ciudad"
    SECTOR = "sector"

    @classmethod
    def parse(cls, value: "Level | str") -> "Level":
        """Acepta un Level o su nombre ("provincia")."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ParsingError(
                "Nivel de catálogo desconocido",
                details={"level": value, "valid": [lvl.value for lvl in cls]}
            ) from None

    @property
    def depth(self) -> int:
        return LEVELS.index(self)

    @property
    def parent(self) -> "Level | None":
        return LEVELS[self.depth - 1] if self.depth > 0 else None

    @property
    def child(self) -> "Level | None":
        return LEVELS[self.depth + 1] if self.depth + 1 < len(LEVELS) else None

    def descendants(self) -> list["Level"]:
        return list(LEVELS[self.depth + 1:])

    def ancestors(self) -> list["Level"]:
        return list(LEVELS[:self.depth])


LEVELS: tuple[Level, ...] = (Level.PAIS, Level.PROVINCIA, Level.CIUDAD, Level.SECTOR)

# Clave de la lista en la respuesta de /ubicaciones/<recurso>
LIST_KEYS: dict[Level, str] = {
    Level.PAIS: "paises",
    Level.PROVINCIA: "provincias",
    Level.CIUDAD: "ciudades",
    Level.SECTOR: "sectores",
}


class CatalogEntry(BaseModel):
    """Fila del catálogo de ubicaciones. Solo lectura."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Identificador del catálogo")
    name: str = Field(..., alias="nombre", description="Nombre visible")
    slug: str = Field("", description="Slug único")
    type: str = Field(..., alias="tipo", pattern="^(pais|provincia|ciudad|sector|zona)$")
    code: str | None = Field(None, alias="codigo")
    parent_id: str | None = None
    lat: float | None = Field(None, alias="latitud")
    lng: float | None = Field(None, alias="longitud")

    @classmethod
    def from_api(cls, row: dict[str, Any], default_type: Level | None = None) -> "CatalogEntry":
        """Crea una entrada a partir de una fila JSON del backend.

        El backend envía los ids como números o como cadenas según la tabla;
        aquí se normalizan a str para poder compararlos con los del match.
        """
        if "id" not in row or "nombre" not in row:
            raise ParsingError(
                "Fila de catálogo sin id o nombre",
                details={"keys": sorted(row.keys())}
            )
        data = dict(row)
        data["id"] = str(row["id"])
        if data.get("parent_id") is not None:
            data["parent_id"] = str(data["parent_id"])
        if not data.get("tipo") and default_type is not None:
            data["tipo"] = default_type.value
        for key in ("latitud", "longitud"):
            if data.get(key) in ("", None):
                data[key] = None
        return cls.model_validate(data)

    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None
