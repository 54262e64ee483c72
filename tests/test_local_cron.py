"""
StatusPulse Gate - Local Cron Tests
"""

import pytest
from unittest.mock import patch

import httpx

import local_cron
from local_cron import main, run_check, run_daemon
from security import TOKEN_ALPHABET

URL = "http://localhost:3001/api/cron/check-monitors"


def make_response(status_code, **kwargs):
    return httpx.Response(status_code, request=httpx.Request("GET", URL), **kwargs)


class TestRunCheck:
    """Tests for a single trigger."""

    def test_success_returns_payload(self):
        payload = {"message": "Monitor checks completed", "checked": 3}
        with patch("local_cron.httpx.get", return_value=make_response(200, json=payload)) as get:
            assert run_check(URL, "s3cret") == payload

        assert get.call_args.args[0] == URL
        assert get.call_args.kwargs["headers"] == {"Authorization": "Bearer s3cret"}

    def test_http_failure_returns_none(self, caplog):
        with patch("local_cron.httpx.get", return_value=make_response(401, text='{"error":"Unauthorized"}')):
            with caplog.at_level("ERROR"):
                assert run_check(URL, "wrong") is None
        assert "Check failed: 401" in caplog.text

    def test_network_error_returns_none(self, caplog):
        with patch("local_cron.httpx.get", side_effect=httpx.ConnectError("Connection refused")):
            with caplog.at_level("ERROR"):
                assert run_check(URL, "s3cret") is None
        assert "Network error" in caplog.text

    def test_invalid_json_returns_none(self):
        with patch("local_cron.httpx.get", return_value=make_response(200, text="<html>")):
            assert run_check(URL, "s3cret") is None


class TestDaemon:
    """Tests for the polling loop."""

    def test_loops_until_interrupted(self):
        with patch("local_cron.run_check") as check, \
                patch("local_cron.time.sleep", side_effect=[None, KeyboardInterrupt]) as sleep:
            run_daemon(URL, "s3cret", interval=30)

        assert check.call_count == 2
        sleep.assert_called_with(30)


class TestMain:
    """Tests for the CLI entry point."""

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        monkeypatch.setenv("CRON_URL", URL)
        monkeypatch.setattr("config.load_dotenv", lambda: None)

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "")
        assert main([]) == 1

    def test_run_once_success(self):
        with patch.object(local_cron, "run_check", return_value={"ok": True}) as check:
            assert main([]) == 0
        check.assert_called_once_with(URL, "s3cret")

    def test_run_once_failure(self):
        with patch.object(local_cron, "run_check", return_value=None):
            assert main([]) == 1

    def test_daemon_options(self):
        with patch.object(local_cron, "run_daemon") as daemon:
            assert main(["--daemon", "--interval", "5", "--url", "http://example.com/cron"]) == 0
        daemon.assert_called_once_with("http://example.com/cron", "s3cret", 5)

    def test_generate_secret(self, monkeypatch, capsys):
        """Works before CRON_SECRET exists and never triggers a check."""
        monkeypatch.setenv("CRON_SECRET", "")
        with patch.object(local_cron, "run_check") as check:
            assert main(["--generate-secret"]) == 0

        secret = capsys.readouterr().out.strip()
        assert len(secret) == 32
        assert set(secret) <= set(TOKEN_ALPHABET)
        check.assert_not_called()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
