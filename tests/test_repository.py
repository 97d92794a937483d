from cotizador.repository import _affected_rows, _build_assignments, _build_filters, _like_pattern
from cotizador.schemas import QuotationListFilters


def test_build_filters_without_filters():
    assert _build_filters(QuotationListFilters()) == ("TRUE", [])


def test_build_filters_numbers_placeholders_in_order():
    where, params = _build_filters(QuotationListFilters(search=" acme ", cliente_id=3))
    assert where == "(c.id ILIKE $1 OR cl.nombre ILIKE $1) AND c.cliente_id = $2"
    assert params == ["%acme%", 3]


def test_build_assignments():
    assignments, params = _build_assignments({"nombre": "Acme", "telefono": "5512345678"})
    assert assignments == "nombre = $1, telefono = $2"
    assert params == ["Acme", "5512345678"]


def test_affected_rows_parses_command_tag():
    assert _affected_rows("DELETE 1") == 1
    assert _affected_rows("DELETE 0") == 0
    assert _affected_rows(None) == 0
    assert _affected_rows("garbage") == 0


def test_search_wildcards_are_escaped():
    _, params = _build_filters(QuotationListFilters(search="50%_off"))
    assert params == ["%50\\%\\_off%"]
    assert _like_pattern("a\\b") == "%a\\\\b%"
