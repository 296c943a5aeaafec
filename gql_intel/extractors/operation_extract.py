"""
Operation Extractor - Heuristic GraphQL recovery from script text

Scans arbitrary (often minified) JavaScript for embedded GraphQL operations
WITHOUT parsing the GraphQL grammar. Pure pattern matching.

Matcher families, applied independently to the same input:
- named-with-params:     query Foo($id: ID!) { ... }
- anonymous-with-params: query($id: ID!) { ... }
- named-no-params:       query Foo { ... }
- template-wrapped:      gql`query Foo { ... }`
- string-escaped:        "\\n  query Foo { ... }"

A single operation may be found by several families; duplicates are
collapsed later by processors.dedupe.
"""

import re
from typing import Iterable, List, Optional

from gql_intel.models.operation_schema import Operation
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

OPERATION_KEYWORDS = ("query", "mutation", "subscription")

# Combined structural pattern: kind, optional name, optional params, body
OPERATION_PATTERN = re.compile(
    r'^(query|mutation|subscription)\b\s*(\w+)?\s*(\([^)]*\))?\s*\{(.+)\}$',
    re.DOTALL
)
VARIABLE_PATTERN = re.compile(r'\$(\w+)\s*:\s*([^,)]+)')
FIELD_PATTERN = re.compile(r'(\w+)(?:\s*\([^)]*\))?\s*(?:\{[^}]*\})?')

# Longest stretch scanned when completing a selection set to its closing brace
MAX_BODY_SCAN = 20000

ESCAPES = (
    ("\\n", "\n"),
    ("\\t", "  "),
    ('\\"', '"'),
)


def unescape(text: str) -> str:
    for escaped, plain in ESCAPES:
        text = text.replace(escaped, plain)
    return text


def _balanced_end(text: str, open_index: int, limit: int = MAX_BODY_SCAN) -> int:
    """Index just past the brace closing text[open_index], or -1."""
    depth = 0
    stop = min(len(text), open_index + limit)
    for i in range(open_index, stop):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


class PatternMatcher:
    """One heuristic family: extract(text) -> candidate operation strings."""

    name = "base"
    pattern: re.Pattern = None
    # group holding the operation text; 0 = whole match
    group = 0
    # pattern stops at the opening brace; the body runs to its balanced closing brace
    header_only = False

    def extract(self, text: str) -> List[str]:
        candidates = []
        for match in self.pattern.finditer(text):
            if self.header_only:
                candidate = self._complete(text, match)
                if candidate is None:
                    continue
            else:
                candidate = match.group(self.group)
            candidates.append(candidate)
        return candidates

    def _complete(self, text: str, match: "re.Match") -> Optional[str]:
        start = match.start(self.group)
        end = _balanced_end(text, match.end(self.group) - 1)
        if end == -1:
            return None
        return text[start:end]


class NamedWithParamsMatcher(PatternMatcher):
    name = "named-with-params"
    pattern = re.compile(r'(query|mutation|subscription)\s+\w+\s*\([^)]*\)\s*\{')
    header_only = True


class AnonymousWithParamsMatcher(PatternMatcher):
    name = "anonymous-with-params"
    pattern = re.compile(r'(query|mutation|subscription)\s*\([^)]*\)\s*\{')
    header_only = True


class NamedNoParamsMatcher(PatternMatcher):
    name = "named-no-params"
    pattern = re.compile(r'(query|mutation|subscription)\s+\w+\s*\{')
    header_only = True


class TemplateWrappedMatcher(PatternMatcher):
    name = "template-wrapped"
    pattern = re.compile(r'(?:gql|graphql)\s*`\s*((?:query|mutation|subscription)[^`]+)`')
    group = 1


class StringEscapedMatcher(PatternMatcher):
    name = "string-escaped"
    pattern = re.compile(r'["\']\\n\s*((?:query|mutation|subscription)[^"\']+)["\']')
    group = 1


DEFAULT_MATCHERS = (
    NamedWithParamsMatcher(),
    AnonymousWithParamsMatcher(),
    NamedNoParamsMatcher(),
    TemplateWrappedMatcher(),
    StringEscapedMatcher(),
)


def parse_operation(text: str) -> Optional[Operation]:
    """
    Parse one candidate string into an Operation.

    Returns None when the candidate does not have the overall
    `kind [name] [(params)] { body }` shape.
    """
    if not text:
        return None
    text = text.strip()
    if text.startswith("{"):
        # query shorthand: `{ viewer { id } }`
        text = f"query {text}"

    match = OPERATION_PATTERN.match(text)
    if not match:
        return None

    kind, name, params, body = match.groups()

    variables = {}
    if params:
        for var_name, var_type in VARIABLE_PATTERN.findall(params):
            variables[var_name] = var_type.strip()

    fields = tuple(
        field_match.group(1)
        for field_match in FIELD_PATTERN.finditer(body)
        if field_match.group(1)
    )

    return Operation(
        kind=kind,
        name=name,
        variables=variables,
        fields=fields,
        raw_text=text,
    )


class OperationExtractor:
    """Runs every matcher family over a text block and parses the candidates."""

    def __init__(self, matchers: Optional[Iterable[PatternMatcher]] = None):
        self.matchers = list(matchers) if matchers is not None else list(DEFAULT_MATCHERS)

    def candidates(self, content: str) -> List[str]:
        found = []
        for matcher in self.matchers:
            try:
                found.extend(matcher.extract(content))
            except re.error as e:
                logger.debug(f"Matcher {matcher.name} failed: {e}")
        return found

    def extract(self, content: str) -> List[Operation]:
        if not content or not any(kw in content for kw in OPERATION_KEYWORDS):
            return []

        operations = []
        for candidate in self.candidates(content):
            operation = parse_operation(unescape(candidate))
            if operation is not None:
                operations.append(operation)
        return operations


_default_extractor = OperationExtractor()


def extract_operations(content: str) -> List[Operation]:
    """Extract every plausible operation from one script asset or request body."""
    return _default_extractor.extract(content)
