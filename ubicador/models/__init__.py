"""
Modelos de datos para Ubicador.
"""

from .catalog import LEVELS, CatalogEntry, Level
from .geocoding import GeocodedCandidate, GeocodedComponents, PlacePrediction, SessionToken
from .match import MatchedEntry, MatchResult
from .record import LocationRecord

__all__ = [
    "LEVELS",
    "Level",
    "CatalogEntry",
    "GeocodedCandidate",
    "GeocodedComponents",
    "PlacePrediction",
    "SessionToken",
    "MatchedEntry",
    "MatchResult",
    "LocationRecord",
]
