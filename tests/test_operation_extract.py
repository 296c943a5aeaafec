import time

from gql_intel.extractors.operation_extract import (
    AnonymousWithParamsMatcher,
    NamedNoParamsMatcher,
    NamedWithParamsMatcher,
    OperationExtractor,
    StringEscapedMatcher,
    TemplateWrappedMatcher,
    extract_operations,
    parse_operation,
    unescape,
)
from gql_intel.models.operation_schema import OperationKind


def test_parse_named_operation_with_variables():
    op = parse_operation("query Foo($id: ID!) { user(id: $id) { name } }")

    assert op is not None
    assert op.kind == OperationKind.QUERY
    assert op.name == "Foo"
    assert op.variables == {"id": "ID!"}
    assert "user" in op.fields


def test_parse_keeps_variable_declaration_order():
    op = parse_operation("mutation Save($b: Int, $a: String!) { save(a: $a, b: $b) { ok } }")

    assert list(op.variables) == ["b", "a"]
    assert op.signature == "mutation Save($b: Int, $a: String!)"


def test_parse_anonymous_operation():
    op = parse_operation("subscription { onEvent { id } }")

    assert op.kind == OperationKind.SUBSCRIPTION
    assert op.name is None
    assert op.variables == {}


def test_parse_query_shorthand():
    op = parse_operation("{ viewer { login } }")

    assert op.kind == OperationKind.QUERY
    assert op.name is None
    assert "viewer" in op.fields


def test_parse_rejects_non_operations():
    assert parse_operation("") is None
    assert parse_operation("fragment F on User { id }") is None
    assert parse_operation("query Foo") is None
    assert parse_operation("queryFoo { id }") is None


def test_unescape():
    assert unescape('query\\n\\tFoo \\"x\\"') == 'query\n  Foo "x"'


def test_template_wrapped_matcher():
    text = 'const Q = gql`query ListPosts { posts { id title } }`;'

    assert TemplateWrappedMatcher().extract(text) == ["query ListPosts { posts { id title } }"]


def test_string_escaped_matcher():
    text = 'var q="\\n  query Feed { feed { id } }";'

    candidates = StringEscapedMatcher().extract(text)

    assert candidates == ["query Feed { feed { id } }"]


def test_named_no_params_completes_nested_selection():
    text = "x=1;query Deep { a { b { c { d } } } };y=2"

    candidates = NamedNoParamsMatcher().extract(text)

    assert candidates == ["query Deep { a { b { c { d } } } }"]


def test_anonymous_with_params_matcher():
    text = "s='mutation($input: PostInput!) { createPost(input: $input) { id } }'"

    candidates = AnonymousWithParamsMatcher().extract(text)

    assert candidates == ["mutation($input: PostInput!) { createPost(input: $input) { id } }"]


def test_extract_from_minified_bundle():
    bundle = (
        'function a(){return gql`query GetUser($id: ID!) { user(id: $id) { name email } }`}'
        'var b="\\n  mutation UpdateUser($id: ID!, $name: String) {\\n    updateUser(id: $id, name: $name) { id }\\n  }\\n";'
    )

    operations = extract_operations(bundle)
    names = {(op.kind, op.name) for op in operations}

    assert (OperationKind.QUERY, "GetUser") in names
    assert (OperationKind.MUTATION, "UpdateUser") in names
    update = next(op for op in operations if op.name == "UpdateUser")
    assert update.variables == {"id": "ID!", "name": "String"}


def test_extract_without_keywords_is_empty():
    assert extract_operations("function add(a, b) { return a + b }") == []
    assert extract_operations("") == []


def test_extract_ignores_malformed_candidates():
    # keyword present but no operation shape anywhere
    assert extract_operations("var query = location.search; if (query) { go() }") == []


def test_custom_matcher_set():
    extractor = OperationExtractor(matchers=[TemplateWrappedMatcher()])
    text = 'gql`query One { a }` + "query Two { b { c } }"'

    operations = extractor.extract(text)

    assert [op.name for op in operations] == ["One"]


def test_unclosed_body_yields_no_candidate():
    text = "query GetUser($id: ID!) { user(id: $id) { name "

    assert NamedWithParamsMatcher().extract(text) == []


def test_long_unclosed_tail_is_linear():
    text = "query GetUser($id: ID!) {" + "user name " * 10000

    started = time.perf_counter()
    operations = extract_operations(text)
    elapsed = time.perf_counter() - started

    assert operations == []
    assert elapsed < 2.0
