from __future__ import annotations

from pybustrack._redact import mask_target, redact_for_log


def test_redact_for_log_redacts_targets_and_credentials() -> None:
    payload = {
        "message": {
            "token": "dGhpcy1pcy1hLWRldmljZS10b2tlbg",
            "notification": {"title": "Bus Started!", "body": "on your route"},
        },
        "Authorization": "Bearer abc",
        "notificationTarget": "tok-1",
    }

    redacted = redact_for_log(payload)
    assert redacted["message"]["token"] == "<redacted>"
    assert redacted["message"]["notification"]["title"] == "Bus Started!"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["notificationTarget"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    redacted = redact_for_log({"body": "x" * 600}, max_string=10)
    assert redacted["body"].startswith("x" * 10)
    assert "<truncated>" in redacted["body"]


def test_mask_target_keeps_only_the_edges() -> None:
    target = "abcdef0123456789uvwxyz"
    masked = mask_target(target)
    assert masked == "abcdef…uvwxyz"
    assert "0123456789" not in masked


def test_mask_target_short_or_missing() -> None:
    assert mask_target(None) == "<none>"
    assert mask_target("") == "<none>"
    assert mask_target("short-token") == "<redacted>"
