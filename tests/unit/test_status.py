import asyncio

import pytest

from ubicador.models import GeocodedComponents, MatchResult
from ubicador.status import StatusBoard, StatusMessage, describe_match

PAIS = {"id": 1, "nombre": "República Dominicana"}
PROVINCIA = {"id": 10, "nombre": "Santo Domingo"}
CIUDAD = {"id": 100, "nombre": "Santo Domingo Este"}
SECTOR = {"id": 1000, "nombre": "Los Mina"}


def _match(depth, confidence="exact"):
    levels = dict(zip(("pais", "provincia", "ciudad", "sector"), (PAIS, PROVINCIA, CIUDAD, SECTOR)[:depth]))
    return MatchResult.model_validate({**levels, "confidence": confidence})


class TestDescribeMatch:

    def test_sector_exact(self):
        status = describe_match(_match(4), GeocodedComponents(sector="Los Mina"))
        assert status.kind == "success"
        assert status.message == "Ubicación completa: Santo Domingo Este → Los Mina"

    def test_sector_alias(self):
        status = describe_match(_match(4, "alias"), GeocodedComponents(sector="Los Minas"))
        assert status.message == 'Ubicación completa: "Los Minas" es "Los Mina"'

    def test_sector_partial(self):
        status = describe_match(_match(4, "partial"), GeocodedComponents())
        assert "(coincidencia parcial)" in status.message

    def test_city_names_missing_sector(self):
        status = describe_match(_match(3), GeocodedComponents(sector="Barrio X"))
        assert status.kind == "info"
        assert 'Sector no encontrado ("Barrio X")' in status.message

    def test_city_without_sector_name(self):
        status = describe_match(_match(3), GeocodedComponents())
        assert "Sector no encontrado -" in status.message

    @pytest.mark.parametrize("depth, fragment", [
        (2, "País y provincia detectados"),
        (1, "Solo se detectó el país"),
        (0, "Selecciona manualmente"),
    ])
    def test_shallow_matches_warn(self, depth, fragment):
        status = describe_match(_match(depth), GeocodedComponents())
        assert status.kind == "warning"
        assert fragment in status.message


class TestStatusBoard:

    def test_show_without_loop(self):
        board = StatusBoard()
        shown = board.show(StatusMessage(message="hola"))
        assert board.current is shown
        assert shown.created_at > 0

    @pytest.mark.asyncio
    async def test_auto_clear(self):
        board = StatusBoard(ttl=0.01)
        seen = []
        board.subscribe(seen.append)

        board.warn("aviso")
        assert board.current.kind == "warning"
        await asyncio.sleep(0.05)

        assert board.current is None
        assert [s.message if s else None for s in seen] == ["aviso", None]

    @pytest.mark.asyncio
    async def test_new_message_restarts_timer(self):
        board = StatusBoard(ttl=0.05)
        board.warn("primero")
        await asyncio.sleep(0.03)
        board.show(StatusMessage(message="segundo", kind="success"))
        await asyncio.sleep(0.03)

        assert board.current.message == "segundo"

    def test_clear_when_empty_does_not_notify(self):
        board = StatusBoard()
        seen = []
        board.subscribe(seen.append)
        board.clear()
        assert seen == []
