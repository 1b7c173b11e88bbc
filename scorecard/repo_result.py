"""Results of running checks on a repository, and their output formats."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, TextIO


@dataclass
class CheckResult:
    """Outcome of one check."""

    name: str
    passed: bool = False
    confidence: int = 0
    details: list[str] = field(default_factory=list)

    def _to_dict(self, show_details: bool) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Pass": self.passed,
            "Confidence": self.confidence,
            "Details": (self.details or None) if show_details else None,
        }


def display_result(result: bool) -> str:
    """Return ``Pass`` for a passing result and ``Fail`` otherwise."""
    if result:
        return "Pass"
    return "Fail"


def _encode_json(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text


def _csv_field(value: str) -> str:
    if not value:
        return value
    needs_quotes = (
        value == "\\."
        or any(c in value for c in ',"\r\n')
        or value[0].isspace()
    )
    if not needs_quotes:
        return value
    return '"' + value.replace('"', '""') + '"'


@dataclass
class RepoResult:
    """All check results for one repository."""

    repo: str
    date: str = ""
    checks: list[CheckResult] = field(default_factory=list)
    metadata: list[str] = field(default_factory=list)

    def as_json(self, show_details: bool, writer: TextIO) -> None:
        """Write the result as one line of JSON; details only when asked."""
        document = {
            "Repo": self.repo,
            "Date": self.date,
            "Checks": [c._to_dict(show_details) for c in self.checks] or None,
            "Metadata": self.metadata or None,
        }
        writer.write(_encode_json(document) + "\n")

    def as_csv(self, show_details: bool, writer: TextIO) -> None:
        """Write a header line and one CSV record."""
        columns = ["Repository"]
        record = [self.repo]
        for check in self.checks:
            columns += [f"{check.name}_Pass", f"{check.name}_Confidence"]
            record += ["true" if check.passed else "false", str(check.confidence)]
            if show_details:
                columns.append(f"{check.name}_Details")
                record.extend(check.details)
        writer.write(",".join(columns) + "\n")
        writer.write(",".join(_csv_field(value) for value in record) + "\n")

    def as_string(self, show_details: bool, writer: TextIO) -> None:
        """Write a human-readable summary."""
        writer.write(f"Repo: {self.repo}\n")
        for check in self.checks:
            writer.write(
                f"{check.name}: {display_result(check.passed)} {check.confidence}\n"
            )
            if show_details:
                for detail in check.details:
                    writer.write(f"{detail}\n")