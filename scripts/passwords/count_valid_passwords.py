from __future__ import annotations

import argparse
import codecs
import json
from pathlib import Path
import sys
from typing import Any

if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.passwords.common import read_json, write_csv, write_json
from scripts.passwords.parse_policy_records import iter_record_lines
from scripts.passwords.validate_passwords import (
    ON_MALFORMED_MODES,
    MalformedLineError,
    PolicyTally,
    build_summary,
    tally_records,
    validate_summary,
)

DEFAULT_PROFILE: dict[str, Any] = {
    "on_malformed": "fail",
    "encoding": "utf-8",
}

SKIPPED_FIELDNAMES = ["line_no", "line", "reason", "reason_detail"]


class ProfileError(ValueError):
    pass


def load_profile(
    profile_path: str | Path | None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge the JSON profile and then CLI overrides over ``DEFAULT_PROFILE``.

    Values are checked after the merge, so a flag can replace a bad profile entry.
    """
    profile = dict(DEFAULT_PROFILE)
    source = "defaults"
    if profile_path and Path(profile_path).exists():
        path = Path(profile_path)
        source = f"profile {path}"
        try:
            payload = read_json(path)
        except json.JSONDecodeError as exc:
            raise ProfileError(f"{source} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProfileError(f"{source} must be a JSON object")
        profile.update(payload)
    profile.update(overrides or {})

    if not isinstance(profile["on_malformed"], str) or profile["on_malformed"] not in ON_MALFORMED_MODES:
        raise ProfileError(
            f"{source}: on_malformed must be one of {sorted(ON_MALFORMED_MODES)}, "
            f"got {profile['on_malformed']!r}"
        )
    encoding = profile["encoding"]
    if not isinstance(encoding, str):
        raise ProfileError(f"{source}: encoding must be a string, got {encoding!r}")
    try:
        codecs.lookup(encoding)
    except LookupError as exc:
        raise ProfileError(f"{source}: {exc}") from exc
    return profile


def count_valid_passwords(
    input_path: str | Path,
    on_malformed: str = "fail",
    encoding: str = "utf-8",
    summary_path: str | Path | None = None,
    skipped_path: str | Path | None = None,
) -> tuple[PolicyTally, list[str]]:
    tally = tally_records(iter_record_lines(input_path, encoding=encoding), on_malformed=on_malformed)

    errors: list[str] = []
    if summary_path:
        summary = build_summary(tally, source_path=input_path, on_malformed=on_malformed)
        errors = validate_summary(summary)
        write_json(summary_path, summary)
    if skipped_path:
        write_csv(skipped_path, tally.skipped, SKIPPED_FIELDNAMES)
    return tally, errors


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Count password-policy records valid under the old (count) and new (position) rules."
    )
    parser.add_argument("filename", nargs="?", help="Text file with one policy record per line.")
    parser.add_argument(
        "--on-malformed",
        choices=sorted(ON_MALFORMED_MODES),
        default=None,
        help="Abort on the first malformed line ('fail') or discard it and keep counting ('skip').",
    )
    parser.add_argument("--profile", default=None, help="Optional JSON profile with run defaults.")
    parser.add_argument("--summary-out", default=None, help="Optional JSON run summary path.")
    parser.add_argument("--skipped-out", default=None, help="Optional CSV of lines discarded in skip mode.")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if not args.filename:
        parser.error("filename argument required")

    try:
        overrides = {"on_malformed": args.on_malformed} if args.on_malformed else None
        profile = load_profile(args.profile, overrides=overrides)
        tally, errors = count_valid_passwords(
            input_path=args.filename,
            on_malformed=profile["on_malformed"],
            encoding=profile["encoding"],
            summary_path=args.summary_out,
            skipped_path=args.skipped_out,
        )
    except MalformedLineError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        raise SystemExit(1)
    except ProfileError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        raise SystemExit(1)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"[ERROR] io error: {exc}", file=sys.stderr)
        raise SystemExit(1)

    print(f"The number of valid records by the old method is {tally.count_range_valid}")
    print(f"The number of valid records by the new method is {tally.position_xor_valid}")
    if errors:
        for issue in errors:
            print(f"[ERROR] {issue}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
