"""
Tests de GeocodeGateway, Matcher y CatalogStore contra el backend simulado.
"""

import pytest

from ubicador.catalog import CatalogStore
from ubicador.exceptions import MatchError, ParsingError, ServiceError, ServiceHTTPError
from ubicador.gateway import GeocodeGateway
from ubicador.matcher import Matcher
from ubicador.models import GeocodedComponents, Level, MatchResult, SessionToken


@pytest.fixture
def gateway(backend):
    return GeocodeGateway(backend)


class TestSessionToken:

    @pytest.mark.asyncio
    async def test_from_backend(self, gateway):
        token = await gateway.new_session_token()
        assert token == SessionToken(value="tok-1")

    @pytest.mark.asyncio
    async def test_local_fallback(self, gateway, fake_backend):
        fake_backend.failures["/geocoding/session-token"] = 500
        token = await gateway.new_session_token()
        assert token.issued_locally

    @pytest.mark.asyncio
    async def test_local_fallback_on_empty_payload(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/session-token"] = {}
        token = await gateway.new_session_token()
        assert token.issued_locally


class TestGeocoding:

    @pytest.mark.asyncio
    async def test_autocomplete(self, gateway, fake_backend):
        predictions = await gateway.autocomplete("los mina", SessionToken(value="tok-9"))

        assert [p.place_id for p in predictions] == ["place-los-mina", "place-los-minas"]
        assert predictions[0].main_text == "Los Mina"
        assert fake_backend.bodies("/geocoding/autocomplete") == [
            {"input": "los mina", "sessionToken": "tok-9", "countryRestriction": "do"}
        ]

    @pytest.mark.asyncio
    async def test_autocomplete_skips_malformed_rows(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/autocomplete"] = {
            "predictions": [
                {"description": "Los Mina"},
                "basura",
                {"place_id": "place-los-minas", "description": "Los Minas, Santo Domingo Este"},
            ]
        }

        predictions = await gateway.autocomplete("los mina", SessionToken(value="tok-9"))

        assert [p.place_id for p in predictions] == ["place-los-minas"]

    @pytest.mark.asyncio
    async def test_autocomplete_unexpected_payload(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/autocomplete"] = {"predictions": "nada"}
        with pytest.raises(ServiceError):
            await gateway.autocomplete("los mina", SessionToken(value="tok-9"))

    @pytest.mark.asyncio
    async def test_place_details(self, gateway, fake_backend):
        candidate = await gateway.place_details("place-piantini", SessionToken(value="tok-9"))

        assert candidate.components.city == "Santo Domingo de Guzmán"
        assert (candidate.lat, candidate.lng) == (18.4722, -69.9389)
        assert fake_backend.bodies("/geocoding/place-details") == [{"placeId": "place-piantini", "sessionToken": "tok-9"}]

    @pytest.mark.asyncio
    async def test_place_details_without_coordinates(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/place-details"] = {"formatted_address": "Sin punto"}
        with pytest.raises(ServiceError):
            await gateway.place_details("x", SessionToken(value="t"))

    @pytest.mark.asyncio
    async def test_place_details_out_of_range(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/place-details"] = {"lat": 200, "lng": 0}
        with pytest.raises(ServiceError, match="fuera de rango"):
            await gateway.place_details("x", SessionToken(value="t"))

    @pytest.mark.asyncio
    async def test_reverse_with_match_keeps_clicked_point(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/reverse-with-match"] = {
            "google": {"lat": 18.0, "lng": -69.0, "formatted_address": "Los Mina", "pais": "República Dominicana"},
            "ubicacion": {"pais": {"id": 1, "nombre": "República Dominicana"}, "matchLevel": "pais"},
        }

        candidate, match = await gateway.reverse_with_match(18.4923, -69.8543)

        assert (candidate.lat, candidate.lng) == (18.4923, -69.8543)
        assert match.match_level == "pais"

    @pytest.mark.asyncio
    async def test_reverse_without_match(self, gateway, fake_backend):
        fake_backend.posts["/geocoding/reverse-with-match"] = {"google": {"formatted_address": "Mar Caribe"}}

        candidate, match = await gateway.reverse_with_match(17.9, -69.9)

        assert candidate.formatted_address == "Mar Caribe"
        assert match is None

    @pytest.mark.asyncio
    async def test_reverse_without_result(self, gateway):
        with pytest.raises(ServiceError, match="sin resultado"):
            await gateway.reverse_with_match(17.0, -70.0)

    @pytest.mark.asyncio
    async def test_geocode(self, gateway, fake_backend):
        assert await gateway.geocode("Ensanche Ozama, Santo Domingo Este") == (18.4801, -69.8501)

        fake_backend.posts["/geocoding/geocode"] = {"lat": None, "lng": None}
        assert await gateway.geocode("Ninguna parte") is None

    @pytest.mark.asyncio
    async def test_geocode_empty_address(self, gateway):
        with pytest.raises(ParsingError):
            await gateway.geocode("  ")


class TestMatcher:

    @pytest.mark.asyncio
    async def test_match(self, backend, fake_backend):
        matcher = Matcher(backend)
        components = GeocodedComponents(
            country="República Dominicana", province="Santo Domingo",
            city="Santo Domingo Este", sector="Los Minas",
        )

        match = await matcher.match(components)

        assert match.match_level == "sector"
        assert match.confidence == "alias"
        assert fake_backend.bodies("/geocoding/match-ubicacion") == [components.to_api()]

    @pytest.mark.asyncio
    async def test_no_names_skips_backend(self, backend, fake_backend):
        match = await Matcher(backend).match(GeocodedComponents())
        assert match == MatchResult.empty()
        assert fake_backend.calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload(self, backend, fake_backend):
        fake_backend.posts["/geocoding/match-ubicacion"] = {"pais": {"id": 1}}
        with pytest.raises(ServiceError):
            await Matcher(backend).match(GeocodedComponents(country="República Dominicana"))

    @pytest.mark.asyncio
    async def test_gap_in_payload(self, backend, fake_backend):
        fake_backend.posts["/geocoding/match-ubicacion"] = {"sector": {"id": 1, "nombre": "Los Mina"}}
        with pytest.raises(MatchError):
            await Matcher(backend).match(GeocodedComponents(sector="Los Mina"))


class TestCatalogStore:

    @pytest.mark.asyncio
    async def test_children(self, backend, fake_backend):
        store = CatalogStore(backend)

        sectors = await store.sectors("100")

        assert [s.name for s in sectors] == ["Los Mina", "Villa Duarte", "Ensanche Ozama"]
        assert all(s.type == "sector" for s in sectors)
        assert fake_backend.calls[0][:2] == ("GET", "/ubicaciones/sectores/100")

    @pytest.mark.asyncio
    async def test_plain_list_payload(self, backend, fake_backend):
        fake_backend.catalog["/ubicaciones/paises"] = [{"id": 2, "nombre": "Haití"}]
        countries = await CatalogStore(backend).countries()
        assert countries[0].id == "2"
        assert countries[0].type == "pais"

    @pytest.mark.asyncio
    async def test_invalid_row_is_service_error(self, backend, fake_backend):
        fake_backend.catalog["/ubicaciones/paises"] = {"paises": [{"id": 1, "nombre": "RD", "tipo": "municipio"}]}
        with pytest.raises(ServiceError) as exc_info:
            await CatalogStore(backend).countries()
        assert exc_info.value.details["level"] == "pais"

    @pytest.mark.asyncio
    async def test_parent_required(self, backend):
        with pytest.raises(ParsingError):
            await CatalogStore(backend).children(Level.CIUDAD)

    @pytest.mark.asyncio
    async def test_http_error_propagates(self, backend):
        with pytest.raises(ServiceHTTPError):
            await CatalogStore(backend).cities("999")
