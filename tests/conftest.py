"""
Pytest configuration and fixtures for ubicador tests.

El backend se simula con httpx.MockTransport: catálogo pequeño de
República Dominicana y endpoints de geocodificación deterministas.
"""

import asyncio
import copy
import json
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from ubicador import BackendClient, GeocodedCandidate, LocationCoordinator, Settings

API_URL = "http://test.local/api"

CATALOG: dict[str, Any] = {
    "/ubicaciones/paises": {
        "paises": [
            {"id": 1, "nombre": "República Dominicana", "slug": "republica-dominicana", "tipo": "pais", "codigo": "DO"},
        ]
    },
    "/ubicaciones/provincias/1": {
        "provincias": [
            {"id": 10, "nombre": "Santo Domingo", "tipo": "provincia", "parent_id": 1},
            {"id": 11, "nombre": "Distrito Nacional", "tipo": "provincia", "parent_id": 1},
            {"id": 12, "nombre": "Santiago", "tipo": "provincia", "parent_id": 1},
        ]
    },
    "/ubicaciones/ciudades/10": {
        "ciudades": [
            {"id": 100, "nombre": "Santo Domingo Este", "tipo": "ciudad", "parent_id": 10},
            {"id": 101, "nombre": "Santo Domingo Norte", "tipo": "ciudad", "parent_id": 10},
        ]
    },
    "/ubicaciones/ciudades/11": {
        "ciudades": [
            {"id": 110, "nombre": "Santo Domingo de Guzmán", "tipo": "ciudad", "parent_id": 11},
        ]
    },
    "/ubicaciones/ciudades/12": {
        "ciudades": [
            {"id": 120, "nombre": "Santiago de los Caballeros", "tipo": "ciudad", "parent_id": 12},
        ]
    },
    "/ubicaciones/sectores/100": {
        "sectores": [
            {"id": 1000, "nombre": "Los Mina", "tipo": "sector", "parent_id": 100,
             "latitud": 18.4923, "longitud": -69.8543},
            {"id": 1001, "nombre": "Villa Duarte", "tipo": "sector", "parent_id": 100},
            {"id": 1002, "nombre": "Ensanche Ozama", "tipo": "sector", "parent_id": 100,
             "latitud": "", "longitud": ""},
        ]
    },
    "/ubicaciones/sectores/101": {"sectores": []},
    "/ubicaciones/sectores/110": {
        "sectores": [
            {"id": 1100, "nombre": "Piantini", "tipo": "sector", "parent_id": 110,
             "latitud": 18.4722, "longitud": -69.9389},
            {"id": 1101, "nombre": "Gazcue", "tipo": "sector", "parent_id": 110},
        ]
    },
    "/ubicaciones/sectores/120": {
        "sectores": [
            {"id": 1200, "nombre": "Los Jardines", "tipo": "sector", "parent_id": 120},
        ]
    },
}

# Nombre que devuelve el proveedor → nombre del catálogo
ALIASES = {"Los Minas": "Los Mina", "SDE": "Santo Domingo Este"}

# Respuestas del proveedor (GeocodedAddress) por place_id
PLACES: dict[str, dict[str, Any]] = {
    "place-los-mina": {
        "formatted_address": "Calle Principal, Los Mina, Santo Domingo Este",
        "place_id": "place-los-mina",
        "lat": 18.4923, "lng": -69.8543,
        "pais": "República Dominicana", "provincia": "Santo Domingo",
        "ciudad": "Santo Domingo Este", "sector": "Los Mina",
        "types": ["street_address"],
    },
    "place-los-minas": {
        "formatted_address": "Los Minas, Santo Domingo Este",
        "place_id": "place-los-minas",
        "lat": 18.4930, "lng": -69.8550,
        "pais": "República Dominicana", "provincia": "Santo Domingo",
        "ciudad": "Santo Domingo Este", "sector": "Los Minas",
    },
    "place-barrio-x": {
        "formatted_address": "Calle 5, Barrio X, Santo Domingo Este",
        "place_id": "place-barrio-x",
        "lat": 18.4800, "lng": -69.8400,
        "pais": "República Dominicana", "provincia": "Santo Domingo",
        "ciudad": "Santo Domingo Este", "sector": "Barrio X",
    },
    "place-piantini": {
        "formatted_address": "Av. Abraham Lincoln, Piantini, Santo Domingo",
        "place_id": "place-piantini",
        "lat": 18.4722, "lng": -69.9389,
        "pais": "República Dominicana", "provincia": "Distrito Nacional",
        "ciudad": "Santo Domingo de Guzmán", "sector": "Piantini",
    },
    "place-santiago": {
        "formatted_address": "Santiago de los Caballeros",
        "place_id": "place-santiago",
        "lat": 19.4517, "lng": -70.6970,
        "pais": "República Dominicana", "provincia": "Santiago",
        "ciudad": "Ciudad Desconocida",
    },
}

# Reverse geocode por punto (redondeado a 4 decimales)
POINTS: dict[tuple[float, float], str] = {
    (18.4923, -69.8543): "place-los-mina",
    (18.48, -69.84): "place-barrio-x",
    (18.4722, -69.9389): "place-piantini",
}

PREDICTIONS = [
    {
        "place_id": "place-los-mina",
        "description": "Los Mina, Santo Domingo Este, República Dominicana",
        "structured_formatting": {"main_text": "Los Mina", "secondary_text": "Santo Domingo Este"},
        "types": ["sublocality"],
    },
    {
        "place_id": "place-los-minas",
        "description": "Los Minas, Santo Domingo Este, República Dominicana",
        "structured_formatting": {"main_text": "Los Minas", "secondary_text": "Santo Domingo Este"},
    },
]


def _catalog_rows(path: str) -> list[dict]:
    payload = CATALOG.get(path) or {}
    return next(iter(payload.values()), []) if payload else []


def fake_match(body: dict[str, str | None]) -> dict[str, Any]:
    """Match mínimo: nombre exacto o alias, nivel a nivel, sin huecos."""
    result: dict[str, Any] = {}
    confidence = "exact"
    parent_id = None
    paths = {
        "pais": lambda _: "/ubicaciones/paises",
        "provincia": lambda pid: f"/ubicaciones/provincias/{pid}",
        "ciudad": lambda pid: f"/ubicaciones/ciudades/{pid}",
        "sector": lambda pid: f"/ubicaciones/sectores/{pid}",
    }
    for level in ("pais", "provincia", "ciudad", "sector"):
        name = body.get(level)
        if not name:
            break
        wanted = ALIASES.get(name, name)
        rows = _catalog_rows(paths[level](parent_id))
        row = next((r for r in rows if r["nombre"] == wanted), None)
        if row is None:
            break
        if wanted != name:
            confidence = "alias"
        result[level] = {"id": row["id"], "nombre": row["nombre"]}
        parent_id = row["id"]
    deepest = next((lvl for lvl in ("sector", "ciudad", "provincia", "pais") if lvl in result), "none")
    result["matchLevel"] = deepest
    result["confidence"] = confidence if result.get("pais") else "none"
    return result


class FakeBackend:
    """Backend simulado.

    Attributes:
        calls: (método, ruta, cuerpo) de cada petición recibida
        posts: respuesta por ruta POST; puede ser un callable(body)
        failures: código HTTP forzado por ruta
    """

    def __init__(self):
        self.catalog = copy.deepcopy(CATALOG)
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: dict[str, int] = {}
        self._gates: dict[str, list[asyncio.Event]] = {}
        self._token_count = 0
        self.posts: dict[str, Any] = {
            "/geocoding/session-token": self._session_token,
            "/geocoding/autocomplete": self._autocomplete,
            "/geocoding/place-details": lambda body: PLACES[body["placeId"]],
            "/geocoding/reverse-with-match": self._reverse,
            "/geocoding/match-ubicacion": fake_match,
            "/geocoding/geocode": lambda body: {"lat": 18.4801, "lng": -69.8501},
        }

    def hold(self, path: str) -> asyncio.Event:
        """Retiene la próxima petición a `path` hasta que se active el evento."""
        gate = asyncio.Event()
        self._gates.setdefault(path, []).append(gate)
        return gate

    def count(self, path: str, method: str | None = None) -> int:
        return sum(1 for m, p, _ in self.calls if p == path and (method is None or m == method))

    def bodies(self, path: str) -> list[Any]:
        return [body for _, p, body in self.calls if p == path]

    def _session_token(self, body):
        self._token_count += 1
        return {"sessionToken": f"tok-{self._token_count}"}

    @staticmethod
    def _autocomplete(body):
        text = body["input"].casefold()
        return {"predictions": [p for p in PREDICTIONS if text in p["description"].casefold()]}

    @staticmethod
    def _reverse(body):
        place_id = POINTS.get((round(body["lat"], 4), round(body["lng"], 4)))
        if place_id is None:
            return {"google": None, "ubicacion": None}
        google = PLACES[place_id]
        return {"google": google, "ubicacion": fake_match(google)}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        gates = self._gates.get(path)
        if gates:
            await gates.pop(0).wait()

        if path in self.failures:
            return httpx.Response(self.failures[path], json={"error": "fallo simulado"})

        if request.method == "GET":
            if path in self.catalog:
                return httpx.Response(200, json=self.catalog[path])
            return httpx.Response(404, json={"error": "no encontrado"})

        responder: Callable | Any = self.posts.get(path)
        if responder is None:
            return httpx.Response(404, json={"error": "no encontrado"})
        payload = responder(body) if callable(responder) else responder
        return httpx.Response(200, json=payload)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def http_client(fake_backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_backend.handler))


@pytest.fixture
def backend(http_client):
    """BackendClient sobre el backend simulado, sin reintentos lentos."""
    return BackendClient(API_URL, max_retries=0, retry_base_delay=0.001, http_client=http_client)


@pytest.fixture
def settings():
    return Settings(api_url=API_URL, max_retries=0)


@pytest.fixture
def coordinator(backend, settings):
    return LocationCoordinator.from_backend(backend, settings)


@pytest.fixture
def candidate():
    """Fábrica de candidatos a partir de PLACES."""
    def make(place_id: str) -> GeocodedCandidate:
        return GeocodedCandidate.from_api(PLACES[place_id])
    return make


@pytest_asyncio.fixture
async def started(coordinator):
    """Coordinator con la lista de países cargada (país único autoseleccionado)."""
    await coordinator.start()
    return coordinator


def pytest_addoption(parser):
    """Add --integration command line option."""
    parser.addoption(
        "--integration", action="store_true", default=False, help="run integration tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with 'integration' unless --integration is provided."""
    if config.getoption("--integration"):
        # --integration given in cli: do not skip integration tests
        return
    skip_integration = pytest.mark.skip(reason="need --integration option to run")
    for item in items:
        # Solo el marcador; la carpeta tests/integration/ corre siempre
        if item.get_closest_marker("integration"):
            item.add_marker(skip_integration)
