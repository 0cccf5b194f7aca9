"""Tests for the exam CLI."""

from typer.testing import CliRunner

from exam_engine.cli.commands import app
from exam_engine.db import attempts_repository

runner = CliRunner()


def _load(db, catalog_file):
    result = runner.invoke(app, ["load-catalog", str(catalog_file), "--db", db])
    assert result.exit_code == 0, result.output


def _start(db, series_id="single-shot", student_id="stu-1"):
    result = runner.invoke(app, ["start", series_id, student_id, "--db", db, "--seed", "5"])
    assert result.exit_code == 0, result.output
    return attempts_repository.find_in_progress(student_id, series_id).attempt_id


class TestCatalogCommands:
    """Tests for init-db and load-catalog."""

    def test_init_db(self, cli_env):
        result = runner.invoke(app, ["init-db", "--db", cli_env])
        assert result.exit_code == 0
        assert "Database ready" in result.output

    def test_load_catalog(self, cli_env, catalog_file):
        result = runner.invoke(app, ["load-catalog", str(catalog_file), "--db", cli_env])
        assert result.exit_code == 0
        assert "Loaded 2 series and 8 questions" in result.output

    def test_load_missing_file(self, cli_env, tmp_path):
        result = runner.invoke(app, ["load-catalog", str(tmp_path / "nope.yaml"), "--db", cli_env])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_load_invalid_entry(self, cli_env, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("series:\n  - series_id: x\n", encoding="utf-8")
        result = runner.invoke(app, ["load-catalog", str(bad), "--db", cli_env])
        assert result.exit_code == 1
        assert "Invalid catalog entry" in result.output


class TestAttemptCommands:
    """Tests for start/save/submit/review."""

    def test_start_shows_sections(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["start", "mock-1", "stu-1", "--db", cli_env])
        assert result.exit_code == 0
        assert "Attempt started" in result.output
        assert "Physics" in result.output
        assert "Chemistry" in result.output

    def test_start_unknown_series(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["start", "missing", "stu-1", "--db", cli_env])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_full_flow(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)

        saved = runner.invoke(app, ["save", attempt_id, "-a", "p1=b", "--time-left", "900", "--db", cli_env])
        assert saved.exit_code == 0
        assert "Saved" in saved.output

        submitted = runner.invoke(app, ["submit", attempt_id, "-a", "p2=a,c", "--db", cli_env])
        assert submitted.exit_code == 0
        assert "100.00%" in submitted.output

        reviewed = runner.invoke(app, ["review", attempt_id, "--db", cli_env])
        assert reviewed.exit_code == 0
        assert "grade A" in reviewed.output

    def test_invalid_answer_format(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)
        result = runner.invoke(app, ["save", attempt_id, "-a", "p1", "--db", cli_env])
        assert result.exit_code == 1
        assert "Invalid answer" in result.output

    def test_review_before_submit(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)
        result = runner.invoke(app, ["review", attempt_id, "--db", cli_env])
        assert result.exit_code == 1


class TestIntegrityCommands:
    def test_cheat_until_terminated(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["start", "single-shot", "stu-1", "--strict", "--db", cli_env])
        assert "strict mode enabled" in result.output
        attempt_id = attempts_repository.find_in_progress("stu-1", "single-shot").attempt_id

        first = runner.invoke(app, ["cheat", attempt_id, "tab_switch", "--db", cli_env])
        assert first.exit_code == 0
        assert "clean" in first.output

        flagged = runner.invoke(app, ["cheat", attempt_id, "other", "--severity", "high", "-q", "1", "--db", cli_env])
        assert "flagged" in flagged.output

        last = runner.invoke(app, ["cheat", attempt_id, "other", "--severity", "high", "--db", cli_env])
        assert "terminated" in last.output

        stats = runner.invoke(app, ["integrity", attempt_id, "--db", cli_env])
        assert stats.exit_code == 0
        assert "tab_switch" in stats.output

        overview = runner.invoke(app, ["integrity", "--db", cli_env])
        assert overview.exit_code == 0
        assert "terminated" in overview.output

    def test_cheat_without_strict_mode(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)
        result = runner.invoke(app, ["cheat", attempt_id, "tab_switch", "--db", cli_env])
        assert result.exit_code == 1


class TestSeriesCommands:
    def test_leaderboard_empty(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["leaderboard", "mock-1", "--db", cli_env])
        assert result.exit_code == 0
        assert "No graded attempts" in result.output

    def test_leaderboard_and_reset(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)
        runner.invoke(app, ["submit", attempt_id, "--db", cli_env])

        board = runner.invoke(app, ["leaderboard", "single-shot", "--db", cli_env])
        assert board.exit_code == 0
        assert "stu-1" in board.output

        blocked = runner.invoke(app, ["start", "single-shot", "stu-1", "--db", cli_env])
        assert blocked.exit_code == 1

        reset = runner.invoke(app, ["reset-attempts", "single-shot", "stu-1", "--db", cli_env])
        assert reset.exit_code == 0
        assert runner.invoke(app, ["start", "single-shot", "stu-1", "--db", cli_env]).exit_code == 0


class TestQuestionCommands:
    def test_no_graded_attempts(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["questions", "--db", cli_env])
        assert result.exit_code == 0
        assert "No graded attempts" in result.output

    def test_stats_and_lists(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        attempt_id = _start(cli_env)
        runner.invoke(app, ["submit", attempt_id, "-a", "p1=b", "--db", cli_env])

        single = runner.invoke(app, ["questions", "p1", "--db", cli_env])
        assert single.exit_code == 0
        assert "100.00%" in single.output

        lists = runner.invoke(app, ["questions", "-n", "1", "--db", cli_env])
        assert lists.exit_code == 0
        assert "Hardest" in lists.output
        assert "p2" in lists.output

    def test_unknown_question(self, cli_env, catalog_file):
        _load(cli_env, catalog_file)
        result = runner.invoke(app, ["questions", "zzz", "--db", cli_env])
        assert result.exit_code == 1
        assert "not found" in result.output
