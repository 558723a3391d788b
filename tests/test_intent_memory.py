from __future__ import annotations

import json
import logging

import pytest

from printdesk.intent_memory import IntentTally


def test_record_counts_per_intent() -> None:
    tally = IntentTally()

    assert tally.record("greeting") == 1
    assert tally.record("greeting") == 2
    assert tally.record("paper_jam") == 1
    assert tally.snapshot() == {"greeting": 2, "paper_jam": 1}


def test_counts_survive_reload(tmp_path) -> None:
    path = tmp_path / "intents.json"
    IntentTally(path).record("driver_download")

    reloaded = IntentTally(path)
    reloaded.record("driver_download")

    assert reloaded.snapshot() == {"driver_download": 2}
    assert json.loads(path.read_text(encoding="utf-8")) == {"intents": {"driver_download": 2}}


def test_corrupt_file_starts_from_zero(tmp_path) -> None:
    path = tmp_path / "intents.json"
    path.write_text("{not json", encoding="utf-8")

    assert IntentTally(path).snapshot() == {}


def test_first_sighting_is_logged_under_intent_memory(caplog: pytest.LogCaptureFixture) -> None:
    tally = IntentTally()

    with caplog.at_level(logging.INFO, logger="printdesk.intent_memory"):
        tally.record("paper_jam")
        tally.record("paper_jam")

    first_seen = [record for record in caplog.records if "first_seen" in record.getMessage()]
    assert [record.name for record in first_seen] == ["printdesk.intent_memory"]
