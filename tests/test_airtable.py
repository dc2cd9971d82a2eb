from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from golive.airtable import AirtableWatchList
from golive.errors import WatchListError


def _response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(str(status_code))
    return response


def _record(value, record_id="rec1"):
    return {"id": record_id, "fields": {"Twitch Account": value}}


def _expiry(seconds):
    expires = datetime.now(timezone.utc) + timedelta(seconds=seconds)
    return expires.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.fixture
def watch_list(clock):
    wl = AirtableWatchList("key", "appBase", "streamers", on_fatal=MagicMock(), timer_factory=clock)
    wl.session = MagicMock()
    return wl


class TestUsernames:
    def test_reads_twitch_account_field(self, watch_list):
        watch_list.session.get.return_value = _response(
            {"records": [_record(" alice "), _record("bob"), {"id": "rec3", "fields": {}}]}
        )

        assert watch_list.usernames() == ["alice", "bob"]
        url = watch_list.session.get.call_args.args[0]
        assert url == "https://api.airtable.com/v0/appBase/streamers"
        headers = watch_list.session.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer key"

    def test_follows_offset_pagination(self, watch_list):
        watch_list.session.get.side_effect = [
            _response({"records": [_record("alice")], "offset": "itr1"}),
            _response({"records": [_record("bob")]}),
        ]

        assert watch_list.usernames() == ["alice", "bob"]
        assert watch_list.session.get.call_args_list[1].kwargs["params"] == {"offset": "itr1"}

    def test_blank_and_non_string_values_are_skipped(self, watch_list, caplog):
        watch_list.session.get.return_value = _response(
            {"records": [_record("   "), _record(["alice"], "rec2"), _record("bob")]}
        )

        assert watch_list.usernames() == ["bob"]
        assert "rec2" in caplog.text

    def test_record_without_field_is_an_error(self, watch_list):
        watch_list.session.get.return_value = _response(
            {"records": [{"id": "rec9", "fields": {"Name": "Somebody"}}]}
        )
        with pytest.raises(WatchListError):
            watch_list.usernames()

    def test_http_failure_is_watch_list_error(self, watch_list):
        watch_list.session.get.return_value = _response({}, 401)
        with pytest.raises(WatchListError):
            watch_list.usernames()


class TestWebhookRegistration:
    def test_reuses_enabled_matching_webhook(self, watch_list, clock):
        url = "https://golive.example.com/webhook/airtable"
        watch_list.session.get.return_value = _response(
            {
                "webhooks": [
                    {"id": "achOld", "isHookEnabled": False, "notificationUrl": url},
                    {"id": "achLive", "isHookEnabled": True, "notificationUrl": url},
                ]
            }
        )
        watch_list.session.post.return_value = _response({"expirationTime": _expiry(3600)})

        assert watch_list.register_webhook(url) == "achLive"

        posted = watch_list.session.post.call_args.args[0]
        assert posted.endswith("/bases/appBase/webhooks/achLive/refresh")
        assert len(clock.pending) == 1
        assert 3500 < clock.pending[0].interval <= 3600

    def test_creates_webhook_when_none_matches(self, watch_list):
        url = "https://golive.example.com/webhook/airtable"
        watch_list.session.get.return_value = _response({"webhooks": []})
        watch_list.session.post.side_effect = [
            _response({"id": "achNew"}),
            _response({"expirationTime": _expiry(60)}),
        ]

        assert watch_list.register_webhook(url) == "achNew"

        create_call = watch_list.session.post.call_args_list[0]
        assert create_call.kwargs["json"]["notificationUrl"] == url
        assert create_call.kwargs["json"]["specification"] == {
            "options": {"filters": {"dataTypes": ["tableData"]}}
        }

    def test_refresh_rearms_from_new_expiry(self, watch_list, clock):
        watch_list.session.get.return_value = _response({"webhooks": []})
        watch_list.session.post.side_effect = [
            _response({"id": "achNew"}),
            _response({"expirationTime": _expiry(60)}),
            _response({"expirationTime": _expiry(7 * 86400)}),
        ]
        watch_list.register_webhook("https://x/webhook/airtable")

        clock.advance(60)

        assert watch_list.session.post.call_count == 3
        assert len(clock.pending) == 1
        assert clock.pending[0].interval > 6 * 86400

    def test_refresh_failure_goes_to_fatal_path(self, watch_list, clock):
        watch_list.session.get.return_value = _response({"webhooks": []})
        watch_list.session.post.side_effect = [
            _response({"id": "achNew"}),
            _response({"expirationTime": _expiry(60)}),
            _response({}, 500),
        ]
        watch_list.register_webhook("https://x/webhook/airtable")

        clock.advance(60)

        watch_list._refresh_timer._on_error.assert_called_once()
        assert clock.pending == []

    def test_missing_expiration_is_an_error(self, watch_list):
        watch_list.session.post.return_value = _response({})
        with pytest.raises(WatchListError):
            watch_list.refresh_webhook("achX")

    def test_stop_cancels_refresh(self, watch_list, clock):
        watch_list.session.get.return_value = _response({"webhooks": []})
        watch_list.session.post.side_effect = [
            _response({"id": "achNew"}),
            _response({"expirationTime": _expiry(60)}),
        ]
        watch_list.register_webhook("https://x/webhook/airtable")

        watch_list.stop()
        clock.advance(120)

        assert watch_list.session.post.call_count == 2
