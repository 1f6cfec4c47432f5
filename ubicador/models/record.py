from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .catalog import LEVELS, Level

_NAME_FIELDS: dict[Level, str] = {
    Level.PAIS: "country",
    Level.PROVINCIA: "province",
    Level.CIUDAD: "city",
    Level.SECTOR: "sector",
}


class LocationRecord(BaseModel):
    """Registro canónico de la ubicación.

    Es la única fuente de verdad; la posee el Coordinator y el host recibe
    copias. Invariante: un nivel inferior nunca tiene nombre si alguno de sus
    ancestros está vacío (ver `normalized`).
    """
    model_config = ConfigDict(populate_by_name=True)

    country: str = Field("", alias="pais")
    province: str = Field("", alias="provincia")
    city: str = Field("", alias="ciudad")
    sector: str = Field("", alias="sector")
    address: str = Field("", alias="direccion")
    lat: float | None = Field(None, alias="latitud")
    lng: float | None = Field(None, alias="longitud")
    catalog_id: str | None = Field(None, alias="ubicacion_id")

    def name_at(self, level: Level) -> str:
        return getattr(self, _NAME_FIELDS[level])

    def with_names(self, names: dict[Level, str]) -> "LocationRecord":
        """Copia con los nombres de nivel indicados reemplazados."""
        update = {_NAME_FIELDS[level]: name or "" for level, name in names.items()}
        return self.model_copy(update=update)

    def normalized(self) -> "LocationRecord":
        """Vacía todo lo que cuelga del primer nivel vacío."""
        update: dict[str, Any] = {}
        empty_seen = False
        for level in LEVELS:
            if empty_seen:
                update[_NAME_FIELDS[level]] = ""
            elif not self.name_at(level):
                empty_seen = True
        return self.model_copy(update=update) if update else self.model_copy()

    def is_consistent(self) -> bool:
        names = [self.name_at(level) for level in LEVELS]
        return all(names[i] or not names[i + 1] for i in range(len(names) - 1))

    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_api(self) -> dict[str, Any]:
        """Serializa con el vocabulario del backend (pais, latitud, ...)."""
        return self.model_dump(by_alias=True)
