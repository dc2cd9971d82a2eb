import os
import time
from unittest.mock import MagicMock, patch

import pytest

from golive import __main__ as entry


def _age(path, days):
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


def test_cleanup_old_logs(tmp_path):
    old = tmp_path / "golive.log.1"
    fresh = tmp_path / "golive.log"
    unrelated = tmp_path / "notes.txt"
    for path in (old, fresh, unrelated):
        path.write_text("x")
    _age(old, 10)
    _age(unrelated, 30)

    assert entry.cleanup_old_logs(str(tmp_path), max_age_days=7) == 1

    assert not old.exists()
    assert fresh.exists()
    assert unrelated.exists()


def test_cleanup_missing_directory(tmp_path):
    assert entry.cleanup_old_logs(str(tmp_path / "absent")) == 0


def test_validate_flag_exits_with_status(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("sys.argv", ["golive", "--validate"])
    monkeypatch.delenv("TWITCH_CLIENT_ID", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        entry.main()

    assert exc_info.value.code == 1


def test_unsubscribe_reconciles_against_empty_list(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("sys.argv", ["golive", "--unsubscribe"])
    monkeypatch.setattr(entry, "validate_environment", lambda show_details: (True, []))
    relay = MagicMock()
    relay.reconcile.return_value.created = []
    relay.reconcile.return_value.deleted = ["sub-1"]

    with patch.object(entry, "GoLiveConfig"), patch.object(
        entry, "GoLiveRelay", return_value=relay
    ) as relay_cls:
        entry.main()

    assert relay_cls.call_args.kwargs["connect_redis"] is False
    relay.authenticate.assert_called_once()
    relay.reconcile.assert_called_once_with([])
    relay.credentials.stop.assert_called_once()
    relay.start.assert_not_called()


def test_startup_failure_exits_nonzero(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("sys.argv", ["golive"])
    monkeypatch.setattr(entry, "validate_environment", lambda show_details: (True, []))
    relay = MagicMock()
    relay.start.side_effect = RuntimeError("airtable unreachable")

    with patch.object(entry, "GoLiveConfig"), patch.object(
        entry, "GoLiveRelay", return_value=relay
    ):
        with pytest.raises(SystemExit) as exc_info:
            entry.main()

    assert exc_info.value.code == 1
    relay.stop.assert_called_once()
