"""
In-Memory Authority Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from secops.automation.authority import InMemoryAuthority, Report
from secops.automation.errors import AuthorityError


class TestReport:
    """Report value access."""

    def test_value_lookup(self):
        report = Report("e", 0.3, attributes={"tps": 120})
        assert report.value(None) == 0.3
        assert report.value("signal") == 0.3
        assert report.value("tps") == 120
        assert report.value("missing") is None

    def test_from_dict(self):
        report = Report.from_dict({"entity_key": 42, "signal": True, "payload": "abc"})
        assert report.entity_key == "42"
        assert report.signal is True
        assert report.payload == b"abc"
        assert report.attributes == {}


class TestInMemoryAuthority:
    """Scripting and inspection."""

    def test_snapshot_returned_every_fetch(self):
        authority = InMemoryAuthority()
        authority.set_reports("p", [Report("a")])
        assert authority.fetch_reports("p") == [Report("a")]
        assert authority.fetch_reports("p") == [Report("a")]
        assert authority.fetch_reports("other") == []

    def test_batches_then_snapshot(self):
        authority = InMemoryAuthority()
        authority.set_reports("p", [Report("s")])
        authority.queue_batches("p", [[Report("b1")], []])
        assert [r.entity_key for r in authority.fetch_reports("p")] == ["b1"]
        assert authority.fetch_reports("p") == []
        assert [r.entity_key for r in authority.fetch_reports("p")] == ["s"]

    def test_scripted_actions(self):
        authority = InMemoryAuthority(default_outcome=False)
        authority.script_action("p", "warn", "a", [True])
        assert authority.apply_action("p", "warn", "a", b"") is True
        assert authority.apply_action("p", "warn", "a", b"") is False
        calls = authority.calls(action="warn")
        assert [c.succeeded for c in calls] == [True, False]

    def test_fetch_failures(self):
        authority = InMemoryAuthority()
        authority.fail_next_fetches("p", 2)
        for _ in range(2):
            with pytest.raises(AuthorityError) as exc:
                authority.fetch_reports("p")
            assert exc.value.operation == "fetch_reports"
        assert authority.fetch_reports("p") == []

    def test_get_by_id_searches_batches(self):
        authority = InMemoryAuthority()
        authority.queue_batches("p", [[Report("queued")]])
        assert authority.get_by_id("p", "queued") == Report("queued")
        assert authority.get_by_id("p", "ghost") is None

    def test_from_scenario(self):
        authority = InMemoryAuthority.from_scenario("p", {
            "default_outcome": True,
            "reports": [{"entity_key": "n1", "signal": 0.9}],
            "watchlist": ["0xbad"],
            "actions": [{"action": "block", "entity_key": "n1", "outcomes": [False]}],
            "finalize": [False],
        })
        assert authority.fetch_reports("p")[0].signal == 0.9
        assert authority.fetch_watchlist("p") == frozenset({"0xbad"})
        assert authority.apply_action("p", "block", "n1", b"") is False
        assert authority.finalize_batch("p") is False
        assert authority.finalize_batch("p") is True
        assert authority.finalize_count("p") == 2
