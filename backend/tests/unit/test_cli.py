"""
Unit tests for the availarr command line
"""

from unittest.mock import ANY, AsyncMock, Mock, patch

import pytest
from sqlalchemy.orm import sessionmaker

from availarr.cli import build_parser, main
from availarr.config import Config
from availarr.models.content import ContentKind
from availarr.services.exceptions import StoreUnavailableError
from availarr.services.prober import ProbeMethod


@pytest.fixture
def quiet():
    """No log files and no real database connection."""
    with patch('availarr.cli.setup_job_logging') as setup_logging, \
            patch('availarr.cli.init_db') as init_db:
        yield setup_logging, init_db


@pytest.fixture
def fake_runtime():
    runtime = Mock()
    with patch('availarr.cli.build_runtime', return_value=runtime) as build:
        yield build, runtime


class TestParser:

    def test_page_sync_defaults(self):
        args = build_parser().parse_args(["movies"])

        assert args.kind is ContentKind.MOVIE
        assert args.start_page is None
        assert args.concurrency == Config.DEFAULT_CONCURRENCY
        assert args.eviction == "mark-only"
        assert args.dry_run is False

    def test_tv_options(self):
        args = build_parser().parse_args(["tv", "--start-page", "40", "--max-pages", "60", "--dry-run"])

        assert args.kind is ContentKind.SERIES
        assert args.start_page == 40
        assert args.max_pages == 60
        assert args.dry_run is True

    def test_refresh_defaults_to_mark_then_delete(self):
        args = build_parser().parse_args(["refresh", "--workers", "3"])

        assert args.workers == 3
        assert args.eviction == "mark-then-delete"

    def test_invalid_eviction_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["movies", "--eviction", "shred"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:

    def test_database_unavailable_exits_1(self, quiet):
        _, init_db = quiet
        init_db.side_effect = StoreUnavailableError("connection refused")

        assert main(["status"]) == 1

    def test_missing_tmdb_key_exits_1(self, quiet):
        with patch.object(Config, 'TMDB_API_KEY', ''):
            assert main(["movies"]) == 1

    def test_page_sync_runs_and_closes_runtime(self, quiet, fake_runtime):
        build, runtime = fake_runtime
        with patch('availarr.cli.run_page_sync', new_callable=AsyncMock) as runner:
            assert main(["movies", "--max-pages", "2"]) == 0

        build.assert_called_once_with(ANY)
        args = runner.await_args.args[1]
        assert args.max_pages == 2
        runtime.close.assert_called_once()

    def test_refresh_uses_get_probes(self, quiet, fake_runtime):
        build, _ = fake_runtime
        with patch('availarr.cli.run_refresh', new_callable=AsyncMock):
            assert main(["refresh"]) == 0

        build.assert_called_once_with(
            ANY, require_catalog=False, probe_method=ProbeMethod.GET, not_found_is_final=True
        )

    def test_interrupt_exits_130(self, quiet):
        with patch('availarr.cli._run_job', side_effect=KeyboardInterrupt):
            assert main(["episodes"]) == 130

    def test_status_reads_store(self, quiet, db_engine):
        with patch('availarr.cli.SessionLocal', sessionmaker(bind=db_engine)), \
                patch('availarr.cli.collect_status') as collect:
            assert main(["status"]) == 0

        collect.assert_called_once()

    @pytest.mark.parametrize("argv,days", [
        (["cleanup"], Config.CLEANUP_MAX_AGE_DAYS),
        (["cleanup", "--cache"], Config.CACHE_CLEANUP_MAX_AGE_DAYS),
        (["cleanup", "--days", "3"], 3),
        (["cleanup", "--days", "0"], 0),
        (["cleanup", "--cache", "--days", "0"], 0),
    ])
    def test_cleanup_age(self, quiet, db_engine, argv, days):
        with patch('availarr.cli.SessionLocal', sessionmaker(bind=db_engine)), \
                patch('availarr.cli.cleanup_old_content', return_value=0) as cleanup:
            assert main(argv) == 0

        cleanup.assert_called_once_with(ANY, days)

    def test_refill_needs_confirmation(self, quiet, fake_runtime):
        setup_logging, _ = quiet
        build, _ = fake_runtime
        with patch('builtins.input', return_value="n"):
            assert main(["refill"]) == 0

        build.assert_not_called()
        setup_logging.assert_not_called()

    def test_refill_with_yes(self, quiet, fake_runtime):
        with patch('availarr.cli.run_refill', new_callable=AsyncMock) as runner:
            assert main(["refill", "--yes"]) == 0

        runner.assert_awaited_once()

    def test_serve_starts_uvicorn(self):
        with patch('uvicorn.run') as run:
            assert main(["serve", "--port", "9000"]) == 0

        assert run.call_args.args[0] == "availarr.main:app"
        assert run.call_args.kwargs["port"] == 9000
