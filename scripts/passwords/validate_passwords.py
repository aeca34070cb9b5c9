from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import sys
from typing import Any, Iterable

import jsonschema

if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.passwords.common import now_iso
from scripts.passwords.parse_policy_records import Record, RecordParseError, parse_record_line

ON_MALFORMED_FAIL = "fail"
ON_MALFORMED_SKIP = "skip"
ON_MALFORMED_MODES = {ON_MALFORMED_FAIL, ON_MALFORMED_SKIP}

SUMMARY_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["source_path", "generated_at", "on_malformed", "stats", "skipped"],
    "properties": {
        "source_path": {"type": "string"},
        "generated_at": {"type": "string"},
        "on_malformed": {"enum": sorted(ON_MALFORMED_MODES)},
        "stats": {
            "type": "object",
            "required": [
                "lines_seen",
                "records_parsed",
                "skipped_lines",
                "count_range_valid",
                "position_xor_valid",
                "parse_rate",
            ],
            "properties": {
                "lines_seen": {"type": "integer", "minimum": 0},
                "records_parsed": {"type": "integer", "minimum": 0},
                "skipped_lines": {"type": "integer", "minimum": 0},
                "count_range_valid": {"type": "integer", "minimum": 0},
                "position_xor_valid": {"type": "integer", "minimum": 0},
                "parse_rate": {"type": "number", "minimum": 0, "maximum": 1},
            },
        },
        "skipped": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["line_no", "line", "reason"],
                "properties": {
                    "line_no": {"type": "integer", "minimum": 1},
                    "line": {"type": "string"},
                    "reason": {"type": "string"},
                    "reason_detail": {"type": "string"},
                },
            },
        },
    },
}


class MalformedLineError(RecordParseError):
    def __init__(self, line_no: int, detail: str, reason: str) -> None:
        super().__init__(f"line {line_no}: {detail}", reason)
        self.line_no = line_no


@dataclass
class PolicyTally:
    lines_seen: int = 0
    records_parsed: int = 0
    count_range_valid: int = 0
    position_xor_valid: int = 0
    skipped: list[dict[str, Any]] = field(default_factory=list)

    @property
    def parse_rate(self) -> float:
        if self.lines_seen == 0:
            return 0.0
        return self.records_parsed / self.lines_seen


def count_range_valid(record: Record) -> bool:
    occurrences = record.password.count(record.policy.target)
    return record.policy.low <= occurrences <= record.policy.high


def _holds_target(password: str, position: int, target: str) -> bool:
    # 1-based; zero or past-the-end positions never match.
    if position < 1 or position > len(password):
        return False
    return password[position - 1] == target


def position_xor_valid(record: Record) -> bool:
    policy = record.policy
    at_low = _holds_target(record.password, policy.low, policy.target)
    at_high = _holds_target(record.password, policy.high, policy.target)
    return at_low != at_high


def validate_record(record: Record) -> tuple[bool, bool]:
    return count_range_valid(record), position_xor_valid(record)


def tally_records(
    lines: Iterable[tuple[int, str]],
    on_malformed: str = ON_MALFORMED_FAIL,
) -> PolicyTally:
    """Parse numbered lines and count records passing each rule.

    In ``fail`` mode the first malformed line raises ``MalformedLineError``.
    In ``skip`` mode it is kept in ``tally.skipped`` and counting continues.
    """
    if on_malformed not in ON_MALFORMED_MODES:
        raise ValueError(f"unknown on_malformed mode: {on_malformed!r}")

    tally = PolicyTally()
    for line_no, line in lines:
        tally.lines_seen += 1
        record, issue = parse_record_line(line, line_no)
        if issue:
            if on_malformed == ON_MALFORMED_FAIL:
                raise MalformedLineError(line_no, issue["reason_detail"], issue["reason"])
            tally.skipped.append(issue)
            continue

        tally.records_parsed += 1
        by_count, by_position = validate_record(record)
        if by_count:
            tally.count_range_valid += 1
        if by_position:
            tally.position_xor_valid += 1
    return tally


def build_summary(tally: PolicyTally, source_path: str | Path, on_malformed: str) -> dict[str, Any]:
    return {
        "source_path": str(source_path),
        "generated_at": now_iso(),
        "on_malformed": on_malformed,
        "stats": {
            "lines_seen": tally.lines_seen,
            "records_parsed": tally.records_parsed,
            "skipped_lines": len(tally.skipped),
            "count_range_valid": tally.count_range_valid,
            "position_xor_valid": tally.position_xor_valid,
            "parse_rate": tally.parse_rate,
        },
        "skipped": list(tally.skipped),
    }


def validate_summary(summary: dict[str, Any], schema: dict[str, Any] | None = None) -> list[str]:
    errors: list[str] = []
    validator = jsonschema.Draft202012Validator(schema or SUMMARY_SCHEMA)
    for issue in validator.iter_errors(summary):
        path = ".".join(str(part) for part in issue.absolute_path)
        errors.append(f"schema_error at {path or '<root>'}: {issue.message}")
    return errors
