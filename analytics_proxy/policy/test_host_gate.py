import pytest

from analytics_proxy.policy.host_gate import is_host_allowed, parse_allow_hosts


class TestParseAllowHosts:
    def test_none_means_no_restriction(self):
        assert parse_allow_hosts(None) == ()

    def test_empty_string(self):
        assert parse_allow_hosts("") == ()

    def test_trims_and_splits(self):
        assert parse_allow_hosts(" analytics.a.com , analytics.b.com") == (
            "analytics.a.com",
            "analytics.b.com",
        )

    def test_blank_entries_dropped(self):
        assert parse_allow_hosts("analytics.a.com,, ,") == ("analytics.a.com",)


class TestIsHostAllowed:
    @pytest.mark.parametrize("allow_hosts", [(), None, []])
    def test_absent_allowlist_always_passes(self, allow_hosts):
        assert is_host_allowed(allow_hosts, "anything.example")
        assert is_host_allowed(allow_hosts, "")

    def test_listed_host_passes(self):
        assert is_host_allowed(("analytics.a.com", "analytics.b.com"), "analytics.b.com")

    def test_unlisted_host_rejected(self):
        assert not is_host_allowed(("analytics.a.com",), "analytics.evil.com")

    @pytest.mark.parametrize(
        "host",
        ["a.com", "x.analytics.a.com", "ANALYTICS.A.COM", "analytics.a.com:8787"],
    )
    def test_exact_match_only(self, host):
        assert not is_host_allowed(("analytics.a.com",), host)

    def test_rejection_logged(self, caplog):
        with caplog.at_level("WARNING", logger="uvicorn.error"):
            is_host_allowed(("analytics.a.com",), "analytics.evil.com")
        assert "analytics.evil.com" in caplog.text
