import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import MatchError
from .catalog import LEVELS, Level

log = logging.getLogger("ubicador.match")

MatchLevel = Literal["sector", "ciudad", "provincia", "pais", "none"]
Confidence = Literal["exact", "alias", "partial", "none"]


class MatchedEntry(BaseModel):
    """Entrada del catálogo devuelta por el servicio de match (id + nombre)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = Field(..., alias="nombre")

    @model_validator(mode="before")
    @classmethod
    def coerce_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        return data


class MatchResult(BaseModel):
    """Resultado del match de nombres libres contra el catálogo.

    Invariantes:
        - Si hay entrada en un nivel, hay entrada en todos sus ancestros.
        - match_level es siempre el nivel más profundo con entrada.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    pais: MatchedEntry | None = None
    provincia: MatchedEntry | None = None
    ciudad: MatchedEntry | None = None
    sector: MatchedEntry | None = None
    match_level: MatchLevel = Field("none", alias="matchLevel")
    confidence: Confidence = "none"

    @model_validator(mode="before")
    @classmethod
    def derive_match_level(cls, data: Any) -> Any:
        """Corrige match_level si no refleja el nivel más profundo."""
        if not isinstance(data, dict):
            return data

        deepest = "none"
        gap = None
        for level in LEVELS:
            if data.get(level.value):
                if gap is not None:
                    raise MatchError(
                        "Resultado de match con niveles sin ancestros",
                        details={"level": level.value, "missing": gap}
                    )
                deepest = level.value
            elif gap is None:
                gap = level.value

        declared = data.get("matchLevel", data.get("match_level"))
        if declared is not None and declared != deepest:
            log.warning(
                "matchLevel declarado (%s) no coincide con el nivel más profundo (%s); corregido",
                declared, deepest
            )
        data = {k: v for k, v in data.items() if k not in ("matchLevel", "match_level")}
        data["match_level"] = deepest
        if deepest == "none" and data.get("confidence") not in (None, "none"):
            data["confidence"] = "none"
        return data

    @classmethod
    def empty(cls) -> "MatchResult":
        return cls()

    def entry(self, level: Level) -> MatchedEntry | None:
        return getattr(self, level.value)

    def deepest(self) -> MatchedEntry | None:
        if self.match_level == "none":
            return None
        return self.entry(Level(self.match_level))
