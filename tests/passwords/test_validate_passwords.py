import json
from pathlib import Path

import pytest

from scripts.passwords.parse_policy_records import Policy, Record, parse_record
from scripts.passwords.validate_passwords import (
    MalformedLineError,
    PolicyTally,
    build_summary,
    count_range_valid,
    position_xor_valid,
    tally_records,
    validate_record,
    validate_summary,
)


FIXTURE_PATH = Path(__file__).resolve().parent / "fixtures" / "policy_lines.json"


def _load_fixture():
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _numbered(lines):
    return list(enumerate(lines, start=1))


def test_rule_cases_from_fixture():
    payload = _load_fixture()
    for case in payload["rule_cases"]:
        record = parse_record(case["line"])
        assert count_range_valid(record) is case["count_range"], f"failed case: {case['name']}"
        assert position_xor_valid(record) is case["position_xor"], f"failed case: {case['name']}"
        assert validate_record(record) == (case["count_range"], case["position_xor"]), f"failed case: {case['name']}"


def test_zero_position_never_matches():
    record = Record(policy=Policy(low=0, high=2, target="a"), password="ba")
    assert position_xor_valid(record) is True
    record = Record(policy=Policy(low=0, high=1, target="a"), password="ba")
    assert position_xor_valid(record) is False


def test_count_range_allows_zero_occurrences_with_zero_low():
    record = Record(policy=Policy(low=0, high=2, target="q"), password="abc")
    assert count_range_valid(record) is True


def test_tally_counts_both_rules():
    tally = tally_records(_numbered(["1-3 a: abcde", "1-3 b: cdefg", "2-9 c: ccccccccc"]))
    assert tally.lines_seen == 3
    assert tally.records_parsed == 3
    assert tally.count_range_valid == 2
    assert tally.position_xor_valid == 1
    assert tally.skipped == []
    assert tally.parse_rate == 1.0


def test_tally_fail_mode_raises_on_first_malformed_line():
    with pytest.raises(MalformedLineError) as excinfo:
        tally_records(_numbered(["1-3 a: abcde", "oops", "also bad"]), on_malformed="fail")
    assert excinfo.value.line_no == 2
    assert str(excinfo.value).startswith("line 2: invalid record")


def test_tally_skip_mode_discards_malformed_lines():
    tally = tally_records(_numbered(["1-3 a: abcde", "oops", "1-3 c: abcde"]), on_malformed="skip")
    assert tally.lines_seen == 3
    assert tally.records_parsed == 2
    assert tally.count_range_valid == 2
    assert tally.position_xor_valid == 2
    assert [issue["line_no"] for issue in tally.skipped] == [2]
    assert tally.skipped[0]["reason"] == "pattern_mismatch"


def test_tally_rejects_unknown_mode():
    with pytest.raises(ValueError):
        tally_records([], on_malformed="ignore")


def test_empty_input_has_zero_parse_rate():
    tally = tally_records([])
    assert tally == PolicyTally()
    assert tally.parse_rate == 0.0


def test_summary_matches_schema():
    tally = tally_records(_numbered(["1-3 a: abcde", "bad"]), on_malformed="skip")
    summary = build_summary(tally, source_path="input.txt", on_malformed="skip")
    assert validate_summary(summary) == []
    assert summary["stats"]["skipped_lines"] == 1
    assert summary["stats"]["parse_rate"] == 0.5


def test_summary_schema_errors_are_reported():
    summary = build_summary(PolicyTally(), source_path="input.txt", on_malformed="fail")
    summary["stats"]["count_range_valid"] = -1
    errors = validate_summary(summary)
    assert len(errors) == 1
    assert errors[0].startswith("schema_error at stats.count_range_valid")


def test_tally_fail_mode_stops_on_undecodable_line():
    lines = _numbered(["1-3 a: abcde", "1-3 a: \udcff\udcfe", "1-3 c: abcde"])
    with pytest.raises(MalformedLineError) as excinfo:
        tally_records(lines, on_malformed="fail")
    assert excinfo.value.line_no == 2
    assert excinfo.value.reason == "undecodable_line"


def test_tally_skip_mode_counts_past_undecodable_line():
    lines = _numbered(["1-3 a: abcde", "1-3 a: \udcff\udcfe", "1-3 c: abcde"])
    tally = tally_records(lines, on_malformed="skip")
    assert (tally.count_range_valid, tally.position_xor_valid) == (2, 2)
    assert tally.skipped[0]["reason"] == "undecodable_line"
    assert tally.skipped[0]["line"] == "1-3 a: \\xff\\xfe"
