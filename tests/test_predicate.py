import uuid
from datetime import date, datetime

import pytest

from core.exceptions import UnsupportedExpression
from core.predicate import Literal, to_where_clause
from fakes import City, Region, Status


def test_comparison():
    assert to_where_clause(City.pop2000 > 100000) == '(POP2000 > 100000)'


def test_equality_with_none_renders_is_null():
    assert to_where_clause(City.name == None) == '(NAME IS NULL)'  # noqa: E711
    assert to_where_clause(City.name != None) == '(NAME IS NOT NULL)'  # noqa: E711


def test_literal_on_the_left_is_mirrored():
    assert to_where_clause(Literal(100000) < City.pop2000) == '(POP2000 > 100000)'
    assert to_where_clause(Literal(5) >= City.pop2000) == '(POP2000 <= 5)'
    assert to_where_clause(Literal('CA') == City.state) == "(STATE = 'CA')"
    assert to_where_clause(Literal(None) == City.name) == '(NAME IS NULL)'


def test_reflected_python_comparison_is_canonical():
    assert to_where_clause(100000 < City.pop2000) == '(POP2000 > 100000)'


def test_logical_operators():
    predicate = (City.pop2000 > 1000) & ((City.state == 'CA') | ~(City.name == 'X'))

    assert to_where_clause(predicate) == "((POP2000 > 1000) AND ((STATE = 'CA') OR NOT ((NAME = 'X'))))"


def test_string_matching():
    assert to_where_clause(City.name.contains('an')) == "(NAME LIKE '%an%')"
    assert to_where_clause(City.name.startswith('San')) == "(NAME LIKE 'San%')"
    assert to_where_clause(City.name.endswith('ville')) == "(NAME LIKE '%ville')"


def test_quotes_are_doubled():
    assert to_where_clause(City.name == "O'Fallon") == "(NAME = 'O''Fallon')"


def test_timestamp_literal():
    assert (to_where_clause(City.founded >= datetime(2001, 2, 3, 4, 5, 6))
            == "(FOUNDED >= TIMESTAMP '2001-02-03 04:05:06')")
    assert to_where_clause(City.founded < date(2001, 2, 3)) == "(FOUNDED < TIMESTAMP '2001-02-03 00:00:00')"


def test_domain_literal_uses_field_wire_type():
    assert to_where_clause(City.status == Status.RETIRED) == '(STATUS = 2)'
    assert to_where_clause(City.region == Region.SOUTH) == "(REGION = 'S')"


def test_guid_and_bool_literals():
    value = uuid.UUID('6f9619ff-8b86-d011-b42d-00cf4fc964ff')

    assert to_where_clause(City.city_id == value) == "(CITYID = '{6F9619FF-8B86-D011-B42D-00CF4FC964FF}')"
    assert to_where_clause(City.pop2000 == True) == '(POP2000 = 1)'  # noqa: E712


def test_field_to_field_comparison():
    assert to_where_clause(City.name == City.state) == '(NAME = STATE)'


def test_strings_pass_through():
    assert to_where_clause("STATE = 'CA'") == "STATE = 'CA'"
    assert to_where_clause(None) is None


def test_callable_receives_feature_type():
    assert to_where_clause(lambda c: c.pop2000 <= 10, City) == '(POP2000 <= 10)'


def test_arithmetic_is_unsupported():
    with pytest.raises(UnsupportedExpression):
        to_where_clause(City.pop2000 + 1 > 10)


def test_truth_testing_is_unsupported():
    with pytest.raises(UnsupportedExpression):
        to_where_clause((City.pop2000 > 1) and (City.pop2000 < 5))


def test_unsupported_values():
    with pytest.raises(UnsupportedExpression):
        to_where_clause(City.name == object())


def test_like_requires_string():
    with pytest.raises(UnsupportedExpression):
        to_where_clause(City.name.contains(5))
