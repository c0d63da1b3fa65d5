"""Sync language parser.

Tests cover:
    - Block structure, anchors and source order
    - Variable scoping (shared within a block, fresh per block)
    - Literals: strings, numbers, null, booleans
    - Return clauses (absent, single, multiple)
    - Malformed input raises ParseError with a position
"""

import pytest

from errors import ParseError
from sync import RuleTable, SyncBlock, SyncLine, Var, parse


SIGNUP = """
when
  Acct.create(u) -> id
sync
  Profile.create(id)
"""


def test_parse_indexes_block_by_first_when_action():
    table = parse(SIGNUP)
    assert set(table) == {"Acct.create"}
    (block,) = table["Acct.create"]
    assert isinstance(block, SyncBlock)
    assert block.anchor == "Acct.create"
    assert [line.action for line in block.sync] == ["Profile.create"]


def test_same_spelling_shares_variable_across_when_and_sync():
    (block,) = parse(SIGNUP).rules_for("Acct.create")
    returned = block.when[0].returns[0]
    assert isinstance(returned, Var)
    assert block.sync[0].args[0] is returned
    assert block.when[0].args[0] is not returned


def test_each_block_gets_fresh_variables():
    table = parse(SIGNUP + SIGNUP)
    first, second = table["Acct.create"]
    assert first.when[0].args[0].name == second.when[0].args[0].name == "u"
    assert first.when[0].args[0] is not second.when[0].args[0]


def test_literals():
    table = parse('when A.a("hi", 1, -2.5, null, true, false) sync B.b(1)')
    (block,) = table["A.a"]
    assert block.when[0].args == ("hi", 1, -2.5, None, True, False)
    assert isinstance(block.when[0].args[4], bool)


def test_return_clause_absent_single_and_multiple():
    table = parse("""
    when
      A.a(x)
      B.b(x) -> y
      C.c(y) -> left, right, "tag"
    sync
      D.d(left, right)
    """)
    (block,) = table["A.a"]
    assert block.when[0].returns is None
    assert len(block.when[1].returns) == 1
    left, right, tag = block.when[2].returns
    assert isinstance(left, Var) and isinstance(right, Var)
    assert tag == "tag"
    assert block.sync[0].args == (left, right)


def test_empty_argument_list():
    (block,) = parse("when Clock.tick() sync Log.write()").rules_for("Clock.tick")
    assert block.when[0] == SyncLine("Clock.tick", (), None)
    assert block.sync[0].args == ()


def test_identifier_characters():
    (block,) = parse("when Foo.bar_baz-qux!$*(a1.b) sync X.y(a1.b)").rules_for("Foo.bar_baz-qux!$*")
    assert block.sync[0].args[0] is block.when[0].args[0]


def test_whitespace_and_newlines_are_flexible():
    table = parse("when A.a( x ,y )\n  -> z sync\n\tB.b(z)   C.c(x)")
    (block,) = table["A.a"]
    assert len(block.when) == 1
    assert [line.action for line in block.sync] == ["B.b", "C.c"]
    assert block.sync[0].args[0] is block.when[0].returns[0]


def test_multiple_blocks_keep_source_order_per_anchor():
    table = parse("""
    when A.a(x) sync First.go(x)
    when B.b(x) sync Other.go(x)
    when A.a(x) sync Second.go(x)
    """)
    assert [b.sync[0].action for b in table.rules_for("A.a")] == ["First.go", "Second.go"]
    assert [b.anchor for b in table.blocks] == ["A.a", "B.b", "A.a"]
    assert table.referenced_actions() == {"A.a", "B.b", "First.go", "Other.go", "Second.go"}


def test_unknown_anchor_has_no_rules():
    table = parse(SIGNUP)
    assert table.rules_for("Nope.nothing") == ()
    assert "Nope.nothing" not in table


def test_empty_source_gives_empty_table():
    table = parse("  \n\n ")
    assert isinstance(table, RuleTable)
    assert len(table) == 0


def _shape(block):
    """Lines with each variable replaced by the order it first appears in the block."""
    seen = {}

    def slot(p):
        if isinstance(p, Var):
            return ("var", seen.setdefault(p, len(seen)))
        return ("lit", type(p).__name__, p)

    return [
        (line.action, [slot(a) for a in line.args],
         None if line.returns is None else [slot(r) for r in line.returns])
        for line in block.when + block.sync
    ]


REPARSED = """
when
  Acct.create(u, "member", 3) -> id, ok
  Acct.check(id, null, false)
sync
  Profile.create(id, u)
  Audit.log(ok) -> true
when
  Acct.create(u, "admin", 3) -> id, ok
sync
  Admin.grant(id)
"""


def test_reparse_is_equivalent():
    a, b = parse(REPARSED), parse(REPARSED)
    assert a.anchors() == b.anchors() == ["Acct.create"]
    for anchor in a:
        assert [_shape(x) for x in a[anchor]] == [_shape(y) for y in b[anchor]]
    first = _shape(a["Acct.create"][0])
    assert first[0] == ("Acct.create", [("var", 0), ("lit", "str", "member"), ("lit", "int", 3)],
                        [("var", 1), ("var", 2)])
    assert first[2] == ("Profile.create", [("var", 1), ("var", 0)], None)
    assert first[3][2] == [("lit", "bool", True)]


def test_anchors_lists_first_when_actions_in_source_order():
    table = parse("""
    when B.b(x) sync C.c(x)
    when A.a(x) sync C.c(x)
    when B.b(x) sync D.d(x)
    """)
    assert table.anchors() == ["B.b", "A.a"]
    assert set(table.anchors()) == {b.when[0].action for b in table.blocks}


@pytest.mark.parametrize("source", [
    "when A.a(x)",
    "when A.a(x) sync",
    "when sync B.b(x)",
    "sync B.b(x)",
    "when A.a(x sync B.b(x)",
    "when A.a(x) -> sync B.b(x)",
    "when A.a(@) sync B.b(1)",
    "when A.a([1]) sync B.b(1)",
    "when A.a(x,) sync B.b(x)",
    "when 1A.a(x) sync B.b(x)",
])
def test_malformed_source_raises(source):
    with pytest.raises(ParseError):
        parse(source)


def test_parse_error_reports_position():
    with pytest.raises(ParseError) as info:
        parse("when\n  A.a(x)\nsync\n  B.b(x, 'single')\n")
    err = info.value
    assert err.line == 4
    assert err.column == 10
    assert "'single'" in err.text
    assert err.code == "PARSE_ERROR"


def test_literal_return_runs_to_end_of_line():
    (block,) = parse('when A.a(x) -> "ok"\nsync B.b(x)').rules_for("A.a")
    assert block.when[0].returns == ("ok",)
    with pytest.raises(ParseError):
        parse('when A.a(x) -> "ok" sync B.b(x)')
