import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from gql_intel.errors import ExportError
from gql_intel.models.operation_schema import KIND_ORDER, OperationKind
from gql_intel.processors.type_inference import infer_response_types
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)

GROUP_TITLES = {
    OperationKind.QUERY: "Queries",
    OperationKind.MUTATION: "Mutations",
    OperationKind.SUBSCRIPTION: "Subscriptions",
}

TRUNCATION_MARKER = "\n... [truncated]"


def sanitize_target(target):
    """Filesystem-safe identifier for a target URL or name."""
    target = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", (target or "").strip())
    target = re.sub(r"[^A-Za-z0-9._-]", "_", target).strip("_")
    return target or "target"


def build_base_name(target):
    return f"graphql_operations_{sanitize_target(target)}"


def _now():
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class ExportReport:
    paths: dict = field(default_factory=dict)
    errors: dict = field(default_factory=dict)

    @property
    def ok(self):
        return not self.errors


class OperationExporter:
    def __init__(self, output_dir="output", base_name="graphql_operations", log_truncate_bytes=5000):
        self.output_dir = output_dir
        self.base_name = base_name
        self.log_truncate_bytes = log_truncate_bytes

    # ------------------------------------------------------------------
    # Schema-definition text
    # ------------------------------------------------------------------

    def render_schema(self, operations):
        lines = [
            "# Extracted GraphQL Operations",
            f"# Generated at: {_now()}",
            "",
        ]
        for kind in KIND_ORDER:
            group = [op for op in operations if op.kind == kind]
            if not group:
                continue
            lines.append(f"# {GROUP_TITLES[kind]}")
            for op in group:
                lines.append(self._format_operation(op))
                lines.append("")
        return "\n".join(lines) + "\n"

    def _format_operation(self, op):
        if op.raw_text and "\n" in op.raw_text:
            return op.raw_text

        body = []
        if op.raw_text:
            start = op.raw_text.find("{")
            end = op.raw_text.rfind("}")
            if start != -1 and end > start:
                for line in op.raw_text[start + 1:end].split("\n"):
                    line = line.strip()
                    if line:
                        body.append(f"  {line}")
        else:
            body = [f"  {name}" for name in op.fields]

        return "\n".join([f"{op.signature} {{"] + body + ["}"])

    # ------------------------------------------------------------------
    # Structured JSON
    # ------------------------------------------------------------------

    def build_json(self, operations, captures):
        detailed = []
        for op in operations:
            entry = {
                "kind": op.kind.value,
                "name": op.name or "",
                "variables": dict(op.variables),
                "fields": list(op.fields),
                "signature": op.signature,
            }
            if op.variables:
                entry["variableTypes"] = op.variable_types()
            detailed.append(entry)

        export = {
            "operations": detailed,
            "timestamp": _now(),
            "summary": {
                "totalOperations": len(operations),
                "queries": sum(1 for op in operations if op.kind == OperationKind.QUERY),
                "mutations": sum(1 for op in operations if op.kind == OperationKind.MUTATION),
                "subscriptions": sum(1 for op in operations if op.kind == OperationKind.SUBSCRIPTION),
                "networkCaptures": len(captures),
            },
        }

        types = infer_response_types(captures)
        if types:
            export["inferredTypes"] = {key: node.to_dict() for key, node in types.items()}
        return export

    def render_json(self, operations, captures):
        return json.dumps(self.build_json(operations, captures), indent=2, ensure_ascii=False, default=str)

    # ------------------------------------------------------------------
    # Detailed log
    # ------------------------------------------------------------------

    def render_detailed_log(self, operations, captures):
        out = [
            "# GraphQL Operations Detailed Log",
            f"# Generated at: {_now()}",
            "",
        ]

        if operations:
            out.append("## Operations\n")
            for i, op in enumerate(operations, start=1):
                out.append(f"### Operation {i}: {op.kind.value} {op.name or '(anonymous)'}")
                if op.variables:
                    out.append(f"Variables: {json.dumps(op.variables, ensure_ascii=False)}")
                out.append(f"```graphql\n{op.raw_text}\n```\n")

        if captures:
            out.append("## Network Captures\n")
            for i, capture in enumerate(captures, start=1):
                out.append(f"### Capture {i}")
                out.append(f"- Time: {capture.timestamp.isoformat(timespec='seconds')}")
                out.append(f"- URL: {capture.source_url}")
                if capture.operation_name:
                    out.append(f"- Operation: {capture.operation_name}")
                out.append("")

                if capture.query:
                    out.append(f"#### Query\n```graphql\n{capture.query}\n```\n")
                if capture.variables:
                    variables_json = json.dumps(capture.variables, indent=2, ensure_ascii=False, default=str)
                    out.append(f"#### Variables\n```json\n{variables_json}\n```\n")
                if capture.has_response:
                    out.append(f"#### Response\n```json\n{self._truncate(capture.response)}\n```\n")
                out.append("---\n")

        return "\n".join(out) + "\n"

    def _truncate(self, payload):
        text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
        if self.log_truncate_bytes and len(text) > self.log_truncate_bytes:
            text = text[:self.log_truncate_bytes] + TRUNCATION_MARKER
        return text

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def paths(self):
        return {
            "schema": os.path.join(self.output_dir, f"{self.base_name}.graphql"),
            "json": os.path.join(self.output_dir, f"{self.base_name}.json"),
            "log": os.path.join(self.output_dir, f"{self.base_name}_detailed.log"),
        }

    def _write(self, formatter, path, render):
        try:
            content = render()
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except Exception as e:
            raise ExportError(formatter, e) from e
        return path

    def export_all(self, operations, captures):
        """
        Write the three output files.

        Each formatter runs independently; a failing one is logged and
        reported without stopping the rest.
        """
        operations = list(operations)
        captures = list(captures)
        report = ExportReport()
        targets = self.paths()
        renderers = {
            "schema": lambda: self.render_schema(operations),
            "json": lambda: self.render_json(operations, captures),
            "log": lambda: self.render_detailed_log(operations, captures),
        }

        for formatter, render in renderers.items():
            try:
                report.paths[formatter] = self._write(formatter, targets[formatter], render)
                logger.info(f"Saved {formatter} output to: {targets[formatter]}")
            except ExportError as e:
                report.errors[formatter] = str(e)
                logger.error(str(e))

        return report
