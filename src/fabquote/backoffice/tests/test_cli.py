from typer.testing import CliRunner

from fabquote import __version__
from fabquote.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_set_conversion_rejects_unknown_format():
    result = runner.invoke(app, ["set-conversion", "--output-format", "fbx"])

    assert result.exit_code == 1


def test_unknown_kind_is_rejected():
    result = runner.invoke(app, ["conversion-stats", "--kind", "widgets"])

    assert result.exit_code == 1


def test_db_requires_alembic_ini(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["db", "upgrade"])

    assert result.exit_code == 1
