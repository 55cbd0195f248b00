"""Unit tests for correlation id handling."""

import uuid

from rolekeeper.api.middleware.request_id import resolve_request_id


class TestResolveRequestId:
    def test_accepts_upstream_id(self):
        assert resolve_request_id("edge-7f3a:42") == "edge-7f3a:42"

    def test_generates_when_missing(self):
        assert uuid.UUID(resolve_request_id(None))
        assert uuid.UUID(resolve_request_id(""))

    def test_replaces_unsafe_ids(self):
        for bad in ("has space", "x" * 129, "line\nbreak", "<script>"):
            generated = resolve_request_id(bad)
            assert generated != bad
            assert uuid.UUID(generated)
