"""
Ubicador - Sincronización de ubicaciones
========================================

Mantiene un único registro de ubicación coherente entre tres superficies
visibles a la vez:

    - Búsqueda de dirección con autocompletado
    - Mapa con marcador (click / arrastre)
    - Desplegables del catálogo: País → Provincia → Ciudad → Sector

Uso (asyncio):
    import asyncio
    from ubicador import LocationForm, Settings

    async def main():
        async with LocationForm(Settings.from_env()) as form:
            await form.start()
            await form.search.type_text("Los Mina")
            await form.search.press_key("ArrowDown")
            await form.search.press_key("Enter")
            print(form.record.to_api())

    asyncio.run(main())

El registro canónico es un LocationRecord (Pydantic); los resultados de
match llegan del backend y se validan como MatchResult.
"""

from .catalog import CatalogStore
from .client import BackendClient
from .config import Settings
from .coordinator import LocationCoordinator
from .exceptions import (
    ConfigurationError,
    CoordinateError,
    MatchError,
    ParsingError,
    ServiceConnectionError,
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
    UbicadorError,
)
from .form import LocationForm
from .gateway import GeocodeGateway
from .guard import GuardState, LoopGuard
from .map import MapSurface
from .matcher import Matcher
from .models import (
    CatalogEntry,
    GeocodedCandidate,
    GeocodedComponents,
    Level,
    LocationRecord,
    MatchResult,
    PlacePrediction,
    SessionToken,
)
from .search import SearchSurface
from .selector import CascadingSelector, LoadStatus, PendingSelections

__version__ = "1.0.0"
__all__ = [
    "BackendClient",
    "CatalogStore",
    "GeocodeGateway",
    "Matcher",
    "CascadingSelector",
    "LoadStatus",
    "PendingSelections",
    "LoopGuard",
    "GuardState",
    "LocationCoordinator",
    "SearchSurface",
    "MapSurface",
    "LocationForm",
    "Settings",
    # Modelos
    "CatalogEntry",
    "GeocodedCandidate",
    "GeocodedComponents",
    "Level",
    "LocationRecord",
    "MatchResult",
    "PlacePrediction",
    "SessionToken",
    # Excepciones
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
