from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
import re
import sys
from typing import Any, Iterator

if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.passwords.common import printable_line, strip_line_terminator, write_json

RECORD_PATTERN = re.compile(r"(?P<low>\d+)-(?P<high>\d+)\s(?P<target>\w):\s(?P<password>.+)")
# Bytes the decoder could not map land here under the surrogateescape handler.
ESCAPED_BYTE_PATTERN = re.compile("[\udc80-\udcff]")

REASON_PATTERN_MISMATCH = "pattern_mismatch"
REASON_INVALID_INTEGER = "invalid_integer"
REASON_UNDECODABLE_LINE = "undecodable_line"


class RecordParseError(ValueError):
    def __init__(self, message: str, reason: str = REASON_PATTERN_MISMATCH) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class Policy:
    low: int
    high: int
    target: str


@dataclass(frozen=True)
class Record:
    policy: Policy
    password: str


def _parse_int(raw: str, field: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise RecordParseError(f"parse int error: {field}={raw!r}: {exc}", REASON_INVALID_INTEGER) from exc


def parse_record(line: str) -> Record:
    """Parse one ``<low>-<high> <target>: <password>`` line.

    The line must already have its terminator removed. Anything that does not
    fully match the record shape raises ``RecordParseError``.
    """
    if ESCAPED_BYTE_PATTERN.search(line):
        raise RecordParseError(f"undecodable line: {printable_line(line)!r}", REASON_UNDECODABLE_LINE)
    match = RECORD_PATTERN.fullmatch(line)
    if not match:
        raise RecordParseError(f"invalid record: {line!r}")
    low = _parse_int(match.group("low"), "low")
    high = _parse_int(match.group("high"), "high")
    return Record(
        policy=Policy(low=low, high=high, target=match.group("target")),
        password=match.group("password"),
    )


def parse_record_line(line: str, line_no: int) -> tuple[Record | None, dict[str, Any] | None]:
    try:
        return parse_record(line), None
    except RecordParseError as exc:
        return None, {
            "line_no": line_no,
            "line": printable_line(line),
            "reason": exc.reason,
            "reason_detail": str(exc),
        }


def iter_record_lines(path: str | Path, encoding: str = "utf-8") -> Iterator[tuple[int, str]]:
    # Split on "\n" only; a lone "\r" is part of the password.
    with Path(path).open("r", encoding=encoding, errors="surrogateescape", newline="\n") as handle:
        for line_no, raw_line in enumerate(handle, start=1):
            yield line_no, strip_line_terminator(raw_line)


def record_to_dict(record: Record) -> dict[str, Any]:
    return {
        "low": record.policy.low,
        "high": record.policy.high,
        "target": record.policy.target,
        "password": record.password,
    }


def parse_records_file(path: str | Path, out_path: str | Path, encoding: str = "utf-8") -> tuple[int, int]:
    records: list[dict[str, Any]] = []
    suspicious: list[dict[str, Any]] = []
    for line_no, line in iter_record_lines(path, encoding=encoding):
        record, issue = parse_record_line(line, line_no)
        if issue:
            suspicious.append(issue)
            continue
        records.append(record_to_dict(record))

    write_json(out_path, {"records": records, "suspicious": suspicious})
    return len(records), len(suspicious)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Parse password-policy lines into typed records.")
    parser.add_argument("--input", required=True, help="Text file with one policy record per line.")
    parser.add_argument("--out", default="artifacts/passwords/parsed_records.json", help="Output JSON path.")
    parser.add_argument("--encoding", default="utf-8", help="Input file encoding.")
    return parser


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()
    try:
        record_count, suspicious_count = parse_records_file(args.input, args.out, encoding=args.encoding)
    except OSError as exc:
        print(f"[ERROR] io error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    print(f"Parsed records: {record_count}")
    print(f"Suspicious rows: {suspicious_count}")
    print(f"Records written to {args.out}")


if __name__ == "__main__":
    main()
