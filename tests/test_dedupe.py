import pytest

from gql_intel.models.operation_schema import Operation
from gql_intel.processors.dedupe import OperationDedupe, dedupe, normalize, operation_key


def make_op(raw_text="", **kwargs):
    kwargs.setdefault("kind", "query")
    return Operation(raw_text=raw_text, **kwargs)


def test_normalize_collapses_whitespace_and_comments():
    raw = """
    query Foo( $id : ID! ) {   # fetch the user
      user ( id : $id ) {
        name
      }
    }
    """

    assert normalize(raw) == "query Foo($id:ID!){user(id:$id){name}}"


@pytest.mark.parametrize("raw", [
    "query Foo { user { name } }",
    "query Foo($id: ID!) {\n  user(id: $id) { name } # trailing\n}",
    "  mutation  Save ( $a : [Int!]! , $b : String = \"x y\" ) { save(a: $a) { ok } }  ",
    "{ a(b: 1, c: \"# not a comment\") { d } }",
    "query Q { a ... on B { c } }",
])
def test_normalize_is_idempotent(raw):
    once = normalize(raw)

    assert normalize(once) == once


def test_normalize_empty():
    assert normalize("") == ""
    assert normalize(None) == ""


def test_formatting_variants_collapse():
    a = make_op("query Foo { user { name } }", name="Foo")
    b = make_op("query Foo {\n  user {\n    name\n  }\n}", name="Foo")
    c = make_op("query Foo { user { name } } # cached", name="Foo")

    assert dedupe([a, b, c]) == [a]


def test_first_occurrence_wins_and_order_is_kept():
    first = make_op("query A { a }", name="A")
    second = make_op("mutation B { b }", kind="mutation", name="B")
    again = make_op("query  A  {  a  }", name="A")
    third = make_op("query C { c }", name="C")

    assert dedupe([first, second, again, third]) == [first, second, third]


def test_dedupe_is_idempotent():
    ops = [
        make_op("query A { a }", name="A"),
        make_op("query A {a}", name="A"),
        make_op("query B { b }", name="B"),
    ]

    once = dedupe(ops)

    assert dedupe(once) == once


def test_structural_key_without_raw_text():
    a = make_op(name="A", variables={"b": "Int", "a": "ID!"}, fields=("y", "x"))
    b = make_op(name="A", variables={"a": "ID!", "b": "Int"}, fields=("x", "y"))

    assert operation_key(a) == "query|A|a:ID!,b:Int,|x|y"
    assert operation_key(a) == operation_key(b)
    assert dedupe([a, b]) == [a]


def test_different_operations_survive():
    a = make_op("query A($id: ID!) { a(id: $id) }", name="A", variables={"id": "ID!"})
    b = make_op("query A($id: ID) { a(id: $id) }", name="A", variables={"id": "ID"})

    assert len(dedupe([a, b])) == 2


def test_audit_records_dropped_entries():
    deduper = OperationDedupe()
    ops = [
        make_op("query A { a }", name="A"),
        make_op("query A { a }", name="A"),
        make_op(name="B", fields=("b",)),
        make_op(name="B", fields=("b",)),
    ]

    unique = deduper.dedupe(ops)

    assert len(unique) == 2
    assert deduper.audit == [
        {"index": 1, "kind": "query", "name": "A", "reason": "same_raw_text"},
        {"index": 3, "kind": "query", "name": "B", "reason": "same_structure"},
    ]
