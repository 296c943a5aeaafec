import re

from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

COMMENT_PATTERN = re.compile(r'#[^\n]*')
WHITESPACE_PATTERN = re.compile(r'\s+')
PUNCTUATION_PATTERN = re.compile(r'\s*([{}()\[\]:,])\s*')


def normalize(raw_text):
    """Canonical form of operation text: no comments, single spaces, tight punctuation."""
    if not raw_text:
        return ""
    text = COMMENT_PATTERN.sub("", raw_text)
    text = text.strip()
    text = WHITESPACE_PATTERN.sub(" ", text)
    return PUNCTUATION_PATTERN.sub(r"\1", text)


def operation_key(operation):
    """
    Identity key used to collapse duplicates.

    Normalized raw text when available; otherwise kind, name, sorted variable
    pairs and sorted field names.
    """
    normalized = normalize(operation.raw_text)
    if normalized:
        return normalized

    key = f"{operation.kind.value}|{operation.name or ''}|"
    for name in sorted(operation.variables):
        key += f"{name}:{operation.variables[name]},"
    for field in sorted(operation.fields):
        key += f"|{field}"
    return key


class OperationDedupe:
    def __init__(self):
        self.audit = []

    def dedupe(self, operations):
        seen = set()
        unique = []
        for index, operation in enumerate(operations):
            key = operation_key(operation)
            if key in seen:
                self.audit.append(
                    {
                        "index": index,
                        "kind": operation.kind.value,
                        "name": operation.name or "",
                        "reason": "same_raw_text" if operation.raw_text else "same_structure",
                    }
                )
                continue
            seen.add(key)
            unique.append(operation)

        if len(unique) != len(operations):
            logger.info(f"Deduplicated {len(operations)} operations to {len(unique)} unique operations")
        return unique


def dedupe(operations):
    """First occurrence wins; order of first occurrences is preserved."""
    return OperationDedupe().dedupe(list(operations))
