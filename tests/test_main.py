"""
Тесты для модуля main.py (консольный интерфейс импорта)
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from instapaper_importer.main import main, parse_arguments, resolve_credentials
from instapaper_importer.models import Credentials, FailedArticle, ImportResult

VALID_CSV = (
    "Title,URL,Time Added,Tags,Status\n"
    '"First",https://example.com/1,1700000000,,archive\n'
    '"Second",https://example.com/2,1700000001,,unread\n'
)


@pytest.fixture
def csv_file(temp_dir):
    path = temp_dir / "articles.csv"
    path.write_text(VALID_CSV, encoding="utf-8")
    return str(path)


def test_parse_arguments_defaults():
    args = parse_arguments(["articles.csv"])
    assert args.csv_file == "articles.csv"
    assert args.parser_mode == "positional"
    assert args.require_title is False
    assert args.dry_run is False
    assert args.report_path is None
    assert args.batch_size is None


def test_parse_arguments_rejects_unknown_parser():
    with pytest.raises(SystemExit):
        parse_arguments(["articles.csv", "--parser", "magic"])


@pytest.mark.parametrize("value", ["0", "-5", "abc"])
def test_batch_size_must_be_positive(csv_file, sample_env, value):
    """Нулевой или отрицательный размер пакета отклоняется до импорта"""
    with patch("instapaper_importer.main.run_import") as run_import:
        with pytest.raises(SystemExit) as exc_info:
            main([
                csv_file, "--config", sample_env,
                "--username", "u", "--password", "p", "--batch-size", value,
            ])

    assert exc_info.value.code == 2
    run_import.assert_not_called()


def test_missing_csv_file(temp_dir, sample_env):
    with pytest.raises(SystemExit) as exc_info:
        main([str(temp_dir / "missing.csv"), "--config", sample_env])
    assert exc_info.value.code == 1


def test_dry_run(csv_file, sample_env, capsys):
    """Dry-run разбирает и проверяет CSV без сетевых запросов"""
    with patch("instapaper_importer.main.run_import") as run_import:
        main([csv_file, "--config", sample_env, "--dry-run"])

    run_import.assert_not_called()
    assert "2 articles ready to import" in capsys.readouterr().out


def test_csv_with_bom(temp_dir, sample_env, capsys):
    path = temp_dir / "bom.csv"
    path.write_text(VALID_CSV, encoding="utf-8-sig")

    main([str(path), "--config", sample_env, "--dry-run"])

    assert "2 articles ready to import" in capsys.readouterr().out


def test_invalid_csv_exits_before_import(temp_dir, sample_env, capsys):
    """Некорректный CSV останавливает запуск до обращения к прокси"""
    path = temp_dir / "bad.csv"
    path.write_text('"Example",https://example.com,,,archive\nhttps://bad-url,unread', encoding="utf-8")

    with patch("instapaper_importer.main.run_import") as run_import:
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--config", sample_env, "--username", "u", "--password", "p"])

    assert exc_info.value.code == 1
    run_import.assert_not_called()
    assert 'Row 2 contains an invalid URL: "unread"' in capsys.readouterr().out


def test_require_title(temp_dir, sample_env):
    path = temp_dir / "untitled.csv"
    path.write_text(",https://example.com/1\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        main([str(path), "--config", sample_env, "--require-title", "--dry-run"])
    assert exc_info.value.code == 1


def test_import_with_report(csv_file, sample_env, temp_dir, capsys):
    """Успешный импорт печатает итог и сохраняет отчет"""
    result = ImportResult(
        success=True,
        message="Successfully imported 1 articles, 1 failed",
        imported_count=1,
        failed_count=1,
        failed_articles=[FailedArticle(url="https://example.com/2", error="Invalid URL")],
    )
    report_path = temp_dir / "reports" / "result.json"

    with patch("instapaper_importer.main.run_import", new=AsyncMock(return_value=result)) as run_import:
        main([
            csv_file, "--config", sample_env,
            "--username", "reader", "--password", "pw",
            "--report", str(report_path), "--batch-size", "3",
        ])

    config, credentials, rows = run_import.call_args[0]
    assert credentials == Credentials(username="reader", password="pw")
    assert [row.url for row in rows] == ["https://example.com/1", "https://example.com/2"]
    assert config.import_batch_size == 3

    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report == result.to_dict()

    out = capsys.readouterr().out
    assert "Successfully imported 1 articles, 1 failed" in out
    assert "FAILED https://example.com/2: Invalid URL" in out


def test_failed_import_exit_code(csv_file, sample_env):
    result = ImportResult(success=False, message="Failed to authenticate")

    with patch("instapaper_importer.main.run_import", new=AsyncMock(return_value=result)):
        with pytest.raises(SystemExit) as exc_info:
            main([csv_file, "--config", sample_env, "--username", "u", "--password", ""])

    assert exc_info.value.code == 1


class TestResolveCredentials:
    """Тесты получения учетных данных"""

    def test_from_arguments(self):
        args = SimpleNamespace(username="user", password="")
        assert resolve_credentials(args) == Credentials(username="user", password="")

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("INSTAPAPER_USERNAME", "env-user")
        monkeypatch.setenv("INSTAPAPER_PASSWORD", "env-pw")
        args = SimpleNamespace(username=None, password=None)
        assert resolve_credentials(args) == Credentials(username="env-user", password="env-pw")

    def test_prompts(self):
        args = SimpleNamespace(username=None, password=None)
        with patch("builtins.input", return_value=" prompted "), \
                patch("instapaper_importer.main.getpass.getpass", return_value="secret"):
            creds = resolve_credentials(args)
        assert creds == Credentials(username="prompted", password="secret")

    def test_empty_username(self):
        args = SimpleNamespace(username=None, password="pw")
        with patch("builtins.input", return_value=""):
            with pytest.raises(ValueError):
                resolve_credentials(args)
