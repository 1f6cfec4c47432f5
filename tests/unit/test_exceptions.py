"""
Tests para la jerarquía de excepciones de Ubicador.
"""

import pytest

from ubicador.exceptions import (
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


class TestExceptionHierarchy:

    @pytest.mark.parametrize("exc_class", [
        ConfigurationError, ParsingError, CoordinateError, MatchError, ServiceError,
    ])
    def test_all_inherit_from_base(self, exc_class):
        assert issubclass(exc_class, UbicadorError)

    @pytest.mark.parametrize("exc_class", [
        ServiceConnectionError, ServiceTimeoutError, ServiceHTTPError,
    ])
    def test_service_errors(self, exc_class):
        assert issubclass(exc_class, ServiceError)

    def test_catch_everything_with_base(self):
        with pytest.raises(UbicadorError):
            raise ServiceTimeoutError("Timeout")


class TestUbicadorError:

    def test_message_only(self):
        err = UbicadorError("Algo falló")
        assert str(err) == "Algo falló"
        assert err.details == {}
        assert repr(err) == "UbicadorError(message='Algo falló')"

    def test_with_details(self):
        err = ParsingError("Nivel desconocido", details={"level": "barrio"})
        assert str(err) == "Nivel desconocido (level=barrio)"
        assert "details=" in repr(err)

    def test_to_dict(self):
        err = CoordinateError("Latitud fuera de rango", details={"lat": 91})
        data = err.to_dict()
        assert data == {
            "type": "CoordinateError",
            "message": "Latitud fuera de rango",
            "details": {"lat": 91},
        }

    def test_to_dict_copies_details(self):
        err = MatchError("Hueco", details={"missing": "ciudad"})
        err.to_dict()["details"]["missing"] = "otro"
        assert err.details["missing"] == "ciudad"


class TestServiceErrors:

    def test_url_in_details(self):
        err = ServiceConnectionError("Error de conexión", url="http://x/api/ubicaciones/paises")
        assert err.url == "http://x/api/ubicaciones/paises"
        assert err.details["url"] == "http://x/api/ubicaciones/paises"
        assert err.to_dict()["url"] == "http://x/api/ubicaciones/paises"

    def test_http_error(self):
        err = ServiceHTTPError(
            "Error HTTP 503",
            url="http://x/api/geocoding/autocomplete",
            status_code=503,
            response_text="x" * 500,
        )
        assert err.status_code == 503
        assert err.details["status_code"] == 503
        assert len(err.details["response_text"]) == 200

        data = err.to_dict()
        assert data["status_code"] == 503
        assert len(data["response_text"]) == 200

    def test_http_error_without_status(self):
        err = ServiceHTTPError("Error HTTP")
        assert "status_code" not in err.to_dict()
