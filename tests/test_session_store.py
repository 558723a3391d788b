from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import RETENTION_SECONDS, ManualClock
from printdesk.session_store import SessionStore
from printdesk.utils import KeyedLock


def test_unknown_sender_has_no_session(sessions: SessionStore) -> None:
    assert sessions.get("nobody") is None
    assert len(sessions) == 0


def test_set_model_creates_session(sessions: SessionStore, clock: ManualClock) -> None:
    created = sessions.set_model("A", "TSC TTP-247")

    assert created is not None
    assert created.printer_model == "TSC TTP-247"
    assert created.last_touched == clock.now
    assert sessions.get("A").printer_model == "TSC TTP-247"


def test_session_expires_after_retention_window(sessions: SessionStore, clock: ManualClock) -> None:
    sessions.set_model("A", "TSC TTP-247")
    clock.advance(RETENTION_SECONDS + 1)

    assert sessions.get("A") is None
    assert len(sessions) == 0


def test_read_refreshes_last_touched(sessions: SessionStore, clock: ManualClock) -> None:
    sessions.set_model("A", "Zebra ZD420")
    clock.advance(RETENTION_SECONDS - 10)
    assert sessions.get("A") is not None

    clock.advance(20)
    session = sessions.get("A")

    assert session is not None
    assert session.printer_model == "Zebra ZD420"


def test_write_after_expiry_starts_a_fresh_session(sessions: SessionStore, clock: ManualClock) -> None:
    sessions.set_model("A", "TSC TE200")
    clock.advance(RETENTION_SECONDS + 1)

    session = sessions.set_software("A", "BarTender")

    assert session.printer_model is None
    assert session.software_name == "BarTender"


def test_empty_session_is_never_stored(sessions: SessionStore) -> None:
    assert sessions.set_model("A", "   ") is None
    assert len(sessions) == 0

    sessions.set_model("A", "TSC TE200")
    assert sessions.set_model("A", None) is None
    assert sessions.get("A") is None


def test_clearing_one_field_keeps_the_other(sessions: SessionStore) -> None:
    sessions.set_model("A", "TSC TE200")
    sessions.set_software("A", "BarTender")

    session = sessions.set_model("A", "")

    assert session is not None
    assert session.printer_model is None
    assert session.software_name == "BarTender"


def test_touch_does_not_create_sessions(sessions: SessionStore) -> None:
    assert sessions.touch("ghost") is False
    assert len(sessions) == 0

    sessions.set_software("A", "NiceLabel")
    assert sessions.touch("A") is True


def test_sweep_removes_only_expired(sessions: SessionStore, clock: ManualClock) -> None:
    sessions.set_model("old", "TSC TE200")
    clock.advance(47 * 60 * 60)
    sessions.set_model("recent", "Zebra ZD420")
    clock.advance(2 * 60 * 60)

    removed = sessions.sweep()

    assert removed == 1
    assert len(sessions) == 1
    assert sessions.get("recent") is not None


def test_sweep_accepts_explicit_now(sessions: SessionStore, clock: ManualClock) -> None:
    sessions.set_model("A", "TSC TE200")

    assert sessions.sweep(now=clock.now + 60) == 0
    assert sessions.sweep(now=clock.now + RETENTION_SECONDS + 60) == 1


def test_delete(sessions: SessionStore) -> None:
    sessions.set_model("A", "TSC TE200")

    assert sessions.delete("A") is True
    assert sessions.delete("A") is False


def test_rejects_non_positive_retention() -> None:
    with pytest.raises(ValueError):
        SessionStore(retention_seconds=0)


def test_snapshot_round_trip(tmp_path: Path, clock: ManualClock) -> None:
    path = tmp_path / "sessions.json"
    store = SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock, path=path)
    store.set_model("A", "TSC TTP-247")
    store.set_software("A", "BarTender")

    reloaded = SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock, path=path)
    session = reloaded.get("A")

    assert session.printer_model == "TSC TTP-247"
    assert session.software_name == "BarTender"


def test_snapshot_drops_expired_rows(tmp_path: Path, clock: ManualClock) -> None:
    path = tmp_path / "sessions.json"
    SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock, path=path).set_model("A", "TSC TE200")
    clock.advance(RETENTION_SECONDS + 1)

    reloaded = SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock, path=path)

    assert len(reloaded) == 0


def test_corrupt_snapshot_is_ignored(tmp_path: Path, clock: ManualClock) -> None:
    path = tmp_path / "sessions.json"
    path.write_text("{not json", encoding="utf-8")

    store = SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock, path=path)

    assert len(store) == 0


def test_concurrent_writes_for_one_sender_keep_both_fields(sessions: SessionStore) -> None:
    barrier = threading.Barrier(2)

    def write_model() -> None:
        barrier.wait()
        for _ in range(200):
            sessions.set_model("A", "TSC TE200")

    def write_software() -> None:
        barrier.wait()
        for _ in range(200):
            sessions.set_software("A", "BarTender")

    threads = [threading.Thread(target=write_model), threading.Thread(target=write_software)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    session = sessions.get("A")
    assert session.printer_model == "TSC TE200"
    assert session.software_name == "BarTender"


def test_keyed_lock_releases_entries() -> None:
    locks = KeyedLock()
    with locks.hold("A"):
        assert len(locks) == 1
    assert len(locks) == 0
