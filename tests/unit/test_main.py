"""Unit tests for SplatterApp command handling."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from splatter.main import SplatterApp
from splatter.ui.console import Command


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    monkeypatch.delenv('SUPABASE_ANON_KEY', raising=False)
    config = tmp_path / "splatter.yaml"
    config.write_text("storage:\n  data_directory: data\n", encoding="utf-8")
    with patch('splatter.main.setup_logging'):
        app = SplatterApp(str(config))
    app.orchestrator = Mock()
    app.orchestrator.shutdown = AsyncMock()
    return app


@pytest.mark.unit
class TestSplatterApp:
    """Test cases for SplatterApp."""

    def test_without_supabase_no_store(self, app):
        assert app.store is None

    def test_command_task_held_until_done(self, app):
        async def scenario():
            app.should_exit = asyncio.Event()
            app.orchestrator.tap = AsyncMock()

            app._on_command(Command("tap"))
            assert len(app._command_tasks) == 1

            await asyncio.gather(*list(app._command_tasks))
            await asyncio.sleep(0)
            assert app._command_tasks == set()
            app.orchestrator.tap.assert_awaited_once()

        asyncio.run(scenario())

    def test_quit_sets_exit(self, app):
        async def scenario():
            app.should_exit = asyncio.Event()
            app._on_command(Command("quit"))

            assert app.should_exit.is_set()
            assert app._command_tasks == set()

        asyncio.run(scenario())

    def test_cleanup_cancels_commands_in_flight(self, app):
        async def scenario():
            app.should_exit = asyncio.Event()
            never = asyncio.Event()

            async def slow_submit(text):
                await never.wait()

            app.orchestrator.submit_text = slow_submit
            app._on_command(Command("text", "A long day"))
            await asyncio.sleep(0)

            await app.cleanup()
            await asyncio.sleep(0)

            assert app._command_tasks == set()
            app.orchestrator.shutdown.assert_awaited_once()

        asyncio.run(scenario())

    def test_command_errors_are_contained(self, app):
        async def scenario():
            app.orchestrator.enable_vad = AsyncMock(side_effect=RuntimeError("boom"))
            app.orchestrator.vad_enabled = False

            await app._handle(Command("toggle_vad"))

            app.orchestrator.enable_vad.assert_awaited_once()

        asyncio.run(scenario())
