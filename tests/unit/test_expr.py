"""Tests for predicate expressions."""
from sqlalchemy import Integer

from bisna.filters.expr import Andx, Expr, Orx, normalize_key, text_predicate, to_clause

expr = Expr()


def test_composites_are_immutable():
    """Test that add() returns a new composite and leaves the original alone."""
    first = Andx(("a = 1",))
    second = first.add("b = 2")

    assert first.count() == 1
    assert second.parts == ("a = 1", "b = 2")
    assert Orx().add("a = 1").count() == 1


def test_comparisons_reference_columns():
    """Test that string operands on the left are column references."""
    assert str(expr.eq("u.id", 1)) == "u.id = :param_1"
    assert str(expr.neq("u.id", 1)) == "u.id != :param_1"
    assert str(expr.gte("u.id", 1)) == "u.id >= :param_1"
    assert str(expr.is_null("u.group_id")) == "u.group_id IS NULL"
    assert str(expr.is_not_null("u.group_id")) == "u.group_id IS NOT NULL"


def test_placeholders_become_bind_parameters():
    """Test that :name and ?N operands bind named parameters."""
    assert str(expr.eq("u.id", ":user_id")) == "u.id = :user_id"
    assert str(expr.like("u.name", "?1")) == "u.name LIKE :1"


def test_in_with_placeholder_expands():
    """Test that an IN placeholder binds a list parameter."""
    binds = expr.in_("u.id", ":ids").compile().binds

    assert binds["ids"].expanding is True


def test_not_negates():
    """Test that not_ negates an expression."""
    assert str(expr.not_(expr.eq("u.id", 1))) == "u.id != :param_1"


def test_param_accepts_type():
    """Test that typed parameters keep their type."""
    param = expr.param(":count", Integer())

    assert param.key == "count"
    assert isinstance(param.type, Integer)


def test_param_names_match_parameter_keys():
    """Test that param() names its placeholder like criteria parameter keys."""
    assert expr.param("?1").key == normalize_key("?1") == "1"
    assert expr.param("count").key == "count"
    assert expr.param("::count").key == normalize_key("::count") == ":count"


def test_to_clause_builds_logical_tree():
    """Test conversion of nested composites into SQL."""
    tree = Orx((Andx(("u.active = 1", expr.eq("u.id", 2))), "u.name = :name"))

    sql = str(to_clause(tree))
    assert sql == "u.active = 1 AND u.id = :param_1 OR u.name = :name"


def test_to_clause_empty_composites():
    """Test that empty composites render as constant truth values."""
    assert str(to_clause(Andx())) == "true"
    assert str(to_clause(Orx())) == "false"


def test_text_predicate_rewrites_positional_placeholders():
    """Test that ?N placeholders are bound by name."""
    clause = text_predicate("u.id = ?1 OR u.id = ?2")

    assert str(clause) == "u.id = :1 OR u.id = :2"


def test_text_predicate_ignores_types_for_absent_placeholders():
    """Test that type hints for unrelated names are skipped."""
    clause = text_predicate("u.id = :id", {"other": Integer()})

    assert str(clause) == "u.id = :id"
