"""Tests for the command-line connection check."""

import logging

import httpx
import pytest

from lollms_bridge import main as main_module
from lollms_bridge.config import BackendConfig, Settings
from lollms_bridge.core.cache import MemoryStore
from lollms_bridge.core.client import ChatClient
from lollms_bridge.main import check_connection, main
from lollms_bridge.models.results import ConnectionTestResult


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def settings(monkeypatch):
    """Settings pointing at a fake backend, isolated from the host environment."""
    monkeypatch.delenv("LOLLMS_API_KEY", raising=False)
    monkeypatch.delenv("LOLLMS_API_URL", raising=False)
    return Settings(backend=BackendConfig(endpoint_url="http://lollms.test:9642"))


def fake_check(result):
    async def check(settings):
        return result

    return check


class TestMain:
    """Tests for main exit codes."""

    def test_success(self, settings, monkeypatch, capsys):
        """Test a successful check exits 0 and prints the summary."""
        monkeypatch.setattr(
            main_module,
            "check_connection",
            fake_check(ConnectionTestResult(success=True, message="Connection successful.")),
        )

        assert main(settings) == 0
        assert "Connection successful." in capsys.readouterr().out

    def test_failure(self, settings, monkeypatch, capsys):
        """Test a failed check exits 1 and prints the details."""
        monkeypatch.setattr(
            main_module,
            "check_connection",
            fake_check(
                ConnectionTestResult(
                    success=False, message="Connection failed: bad key", details="URL: x"
                )
            ),
        )

        assert main(settings) == 1
        out = capsys.readouterr().out
        assert "bad key" in out
        assert "URL: x" in out

    def test_invalid_configuration(self, monkeypatch):
        """Test an invalid endpoint exits 2 without a network call."""

        async def unexpected(settings):
            raise AssertionError("check_connection should not run")

        monkeypatch.setattr(main_module, "check_connection", unexpected)
        monkeypatch.delenv("LOLLMS_API_URL", raising=False)
        settings = Settings(backend=BackendConfig(endpoint_url="not a url"))

        assert main(settings) == 2


class TestCheckConnection:
    """Tests for check_connection."""

    @pytest.mark.asyncio
    async def test_reports_models_and_context(self, settings, monkeypatch, caplog):
        """Test the check lists models and logs the context size."""

        def handler(request):
            return httpx.Response(200, json={"data": [{"id": "a"}]})

        def from_settings(cls, s):
            return cls(s.backend, store=MemoryStore(), http_transport=httpx.MockTransport(handler))

        monkeypatch.setattr(ChatClient, "from_settings", classmethod(from_settings))

        with caplog.at_level(logging.INFO, logger="lollms_bridge.main"):
            result = await check_connection(settings)

        assert result.success is True
        assert "Found 1 models" in result.message
        assert "Context size: 4096 (estimated)" in caplog.text
