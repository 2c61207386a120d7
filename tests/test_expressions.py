import pytest

from app.core.exceptions import InvalidInputError
from app.services.expressions import (
    BinOp,
    Number,
    Tag,
    parse_expression,
    referenced_tags,
    validate_expression,
)

WLR = "WFR / (WFR + OFR) * 100"
GVF = "GFR / (GFR + OFR + WFR) * 100"


def test_parses_into_ast():
    expr = parse_expression("OFR + 2 * WFR")
    assert expr.root == BinOp("+", Tag("OFR"), BinOp("*", Number(2.0), Tag("WFR")))


def test_parse_is_cached():
    assert parse_expression(WLR) is parse_expression(WLR)


def test_evaluates_ratio():
    assert parse_expression(WLR).evaluate({"WFR": 25, "OFR": 75}) == pytest.approx(25.0)
    assert parse_expression(GVF).evaluate({"GFR": 50, "OFR": 30, "WFR": 20}) == pytest.approx(50.0)


def test_missing_tags_count_as_zero():
    assert parse_expression("OFR + WFR").evaluate({"OFR": 10}) == 10.0
    assert parse_expression("OFR + WFR").evaluate(None) == 0.0


def test_division_by_zero_gives_zero():
    assert parse_expression(WLR).evaluate({}) == 0.0
    assert parse_expression("OFR / 0").evaluate({"OFR": 5}) == 0.0


def test_non_numeric_values_count_as_zero():
    assert parse_expression("OFR + 1").evaluate({"OFR": "n/a"}) == 1.0
    assert parse_expression("OFR + 1").evaluate({"OFR": "4.5"}) == 5.5


def test_unary_minus_and_precedence():
    assert parse_expression("-OFR + 10").evaluate({"OFR": 4}) == 6.0
    assert parse_expression("(1 + 2) * 3").evaluate({}) == 9.0
    assert parse_expression("1 + 2 * 3").evaluate({}) == 7.0


def test_referenced_tags():
    assert referenced_tags(GVF) == {"GFR", "OFR", "WFR"}
    assert referenced_tags("OFR_2 * 3") == {"OFR_2"}


@pytest.mark.parametrize(
    "source",
    [
        "",
        "OFR +",
        "(OFR + WFR",
        "OFR WFR",
        "'OFR' + 1",
        "ofr + 1",
        "OFRx * 2",
        "OFR; DROP TABLE device",
        "OFR ** 2",
    ],
)
def test_rejects_malformed_expressions(source):
    with pytest.raises(InvalidInputError):
        parse_expression(source)


def test_validate_expression_checks_tags():
    validate_expression(WLR, {"WFR", "OFR", "GFR"})
    with pytest.raises(InvalidInputError) as exc:
        validate_expression(WLR, {"OFR"})
    assert exc.value.details["unknown_tags"] == ["WFR"]


@pytest.mark.parametrize(
    "source, message",
    [
        ("(" * 2000 + "GFR" + ")" * 2000, "tokens"),
        ("(" * 100 + "GFR" + ")" * 100, "nested too deeply"),
        ("-" * 100 + "GFR", "nested too deeply"),
        (" + ".join(["GFR"] * 200), "tokens"),
    ],
)
def test_rejects_oversized_expressions(source, message):
    with pytest.raises(InvalidInputError) as exc:
        parse_expression(source)
    assert message in exc.value.message


def test_moderate_nesting_still_parses():
    expr = parse_expression("(" * 30 + "GFR + 1" + ")" * 30)
    assert expr.evaluate({"GFR": 2}) == 3.0
