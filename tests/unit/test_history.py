"""Tests for the history chain resolver and EditHistory."""

import json

import pytest

from conftest import png_bytes
from imagebridge.core.errors import BufferExpiredError
from imagebridge.core.history import (
    EditHistory,
    build_marker,
    parse_history,
    resolve_base_record,
    resolve_base_token,
)
from imagebridge.core.images import BinaryImage

LOG = [{"c": 1}, {"banana": {"key": "A"}}, {"r": 1}, {"banana": {"key": "B"}}]


class TestResolveBaseToken:
    @pytest.mark.parametrize(
        "undone, expected",
        [(0, "B"), (1, "A"), (2, "A"), (3, None), (4, None), (10, None)],
    )
    def test_undo_watermark(self, undone, expected):
        assert resolve_base_token(LOG, undone) == expected

    @pytest.mark.parametrize("undone", [-1, -100, "abc", None, True, 1.5j])
    def test_invalid_undone_counts_as_zero(self, undone):
        assert resolve_base_token(LOG, undone) == "B"

    def test_numeric_string_undone(self):
        assert resolve_base_token(LOG, "1") == "A"

    def test_empty_log(self):
        assert resolve_base_token([], 0) is None

    @pytest.mark.parametrize("log", [None, "not a list", {"banana": {"key": "A"}}, 42])
    def test_non_list_log(self, log):
        assert resolve_base_token(log) is None

    def test_ignores_opaque_and_malformed_entries(self):
        log = [
            {"banana": {"key": "A"}},
            "string entry",
            None,
            ["list"],
            {"banana": "not a dict"},
            {"banana": {"key": ""}},
            {"banana": {"key": 7}},
            {"banana": {}},
        ]
        assert resolve_base_token(log) == "A"


class TestParseHistory:
    def test_list_passthrough(self):
        assert parse_history(LOG) is LOG

    def test_json_text(self):
        assert parse_history(json.dumps(LOG)) == LOG

    @pytest.mark.parametrize("value", ["", "{not json", '{"a": 1}', None, 5, b""])
    def test_invalid_values(self, value):
        assert parse_history(value) == []


class TestBufferIntegration:
    @pytest.fixture
    def record(self, buffer_store):
        image = BinaryImage.from_bytes(png_bytes(12, 9))
        return buffer_store.store(4, image, {"provider": "gemini", "model": "m", "prompt": "p"})

    def test_build_marker_uses_record_context(self, record):
        assert build_marker(record) == {
            "key": record.key,
            "width": 12,
            "height": 9,
            "mime": "image/png",
            "provider": "gemini",
            "model": "m",
            "prompt": "p",
        }

    def test_build_marker_overrides(self, record):
        marker = build_marker(record, provider="openai", prompt="other")
        assert marker["provider"] == "openai"
        assert marker["prompt"] == "other"
        assert marker["model"] == "m"

    def test_resolve_base_record(self, buffer_store, record):
        log = [{"c": 1}, {"banana": build_marker(record)}]
        resolved = resolve_base_record(buffer_store, log, 0)
        assert resolved.key == record.key

    def test_no_live_marker(self, buffer_store, record):
        log = [{"banana": build_marker(record)}]
        assert resolve_base_record(buffer_store, log, 1) is None

    def test_expired_marker(self, buffer_store, record, clock):
        log = [{"banana": build_marker(record)}]
        clock.advance(3600)
        with pytest.raises(BufferExpiredError):
            resolve_base_record(buffer_store, log, 0)

    def test_other_users_marker(self, buffer_store, record):
        log = [{"banana": build_marker(record)}]
        with pytest.raises(BufferExpiredError):
            resolve_base_record(buffer_store, log, 0, user_id=99)


class TestEditHistory:
    def test_from_json(self):
        history = EditHistory.from_json(json.dumps(LOG), "1")
        assert history.base_token == "A"
        assert history.can_redo
        assert len(history.live_entries) == 3

    def test_undone_clamped_to_length(self):
        history = EditHistory(LOG, undone_count=99)
        assert history.undone_count == 4
        assert history.base_token is None
        assert not history.can_undo

    def test_undo_redo(self):
        history = EditHistory(LOG)
        assert history.undo() is True
        assert history.base_token == "A"
        assert history.redo() is True
        assert history.base_token == "B"
        assert history.redo() is False

    def test_push_drops_undone_tail(self):
        history = EditHistory(LOG, undone_count=2)

        history.push({"banana": {"key": "C"}})

        assert history.entries == [{"c": 1}, {"banana": {"key": "A"}}, {"banana": {"key": "C"}}]
        assert history.undone_count == 0
        assert history.base_token == "C"

    def test_subscribers_see_every_change(self):
        history = EditHistory()
        seen = []
        unsubscribe = history.subscribe(lambda h: seen.append(h.base_token))

        history.push({"banana": {"key": "A"}})
        history.push({"c": 1})
        history.undo()
        history.undo()
        unsubscribe()
        history.redo()

        assert seen == ["A", "A", "A", None]

    def test_reset(self):
        history = EditHistory(LOG)
        history.reset([{"banana": {"key": "Z"}}])
        assert history.base_token == "Z"

    def test_to_json_round_trips_entries(self):
        history = EditHistory(LOG, undone_count=1)
        assert json.loads(history.to_json()) == LOG
