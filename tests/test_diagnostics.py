"""Runtime message tests: ordering, de-duplication and serialization."""

from __future__ import annotations

import pytest

from aicall.diagnostics import (
    MessageCode,
    Origin,
    RuntimeMessage,
    Severity,
    has_errors,
    merge_messages,
)

pytestmark = pytest.mark.unit


def test_merge_puts_errors_first_and_keeps_emission_order() -> None:
    info = RuntimeMessage.info(Origin.REQUEST, "a note")
    warn = RuntimeMessage.warning(Origin.REQUEST, "a warning")
    err1 = RuntimeMessage.error(Origin.VALIDATION, "first error")
    err2 = RuntimeMessage.error(Origin.VALIDATION, "second error")

    merged = merge_messages([info, err1], [warn, err2])

    assert merged == [err1, err2, warn, info]


def test_merge_drops_repeats_first_occurrence_wins() -> None:
    first = RuntimeMessage.warning(Origin.REQUEST, "same text")
    again = RuntimeMessage.warning(Origin.VALIDATION, "same text")

    merged = merge_messages([first], [again])

    assert merged == [first]


def test_merge_keeps_error_sharing_text_with_warning() -> None:
    warn = RuntimeMessage.warning(Origin.REQUEST, "same text")
    err = RuntimeMessage.error(Origin.VALIDATION, "same text")

    merged = merge_messages([warn], [err])

    assert merged == [err, warn]
    assert has_errors(merged)


def test_merge_keeps_same_text_with_different_codes() -> None:
    plain = RuntimeMessage.info(Origin.REQUEST, "note")
    coded = RuntimeMessage.info(
        Origin.REQUEST, "note", MessageCode.CAPABILITY_MISMATCH
    )

    assert merge_messages([plain, coded]) == [plain, coded]


def test_has_errors_only_counts_error_severity() -> None:
    assert not has_errors([RuntimeMessage.warning(Origin.RETURN, "w")])
    assert has_errors([RuntimeMessage.error(Origin.RETURN, "e")])
    assert not has_errors([])


def test_as_dict_is_json_friendly() -> None:
    msg = RuntimeMessage.error(
        Origin.NETWORK, "Network error: boom", MessageCode.RATE_LIMITED
    )

    assert msg.as_dict() == {
        "severity": "error",
        "origin": "network",
        "code": "RATE_LIMITED",
        "message": "Network error: boom",
        "surfaceable": True,
    }
    assert msg.severity is Severity.ERROR
    assert msg.is_error
