import asyncio
import json
import os
import signal
import sys

import pytest

from conftest import registry_env
from registry_api.cli import _stop_on_interrupt, main
from registry_api.service.migration import StorageMigration


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    for key, value in registry_env(tmp_path).items():
        monkeypatch.setenv(key, value)


def test_db_migrate_is_idempotent(capsys):
    assert main(["db", "migrate"]) == 0
    assert "Applied" in capsys.readouterr().out
    assert main(["db", "migrate"]) == 0
    assert "up to date" in capsys.readouterr().out


def test_user_and_token_lifecycle(capsys, monkeypatch):
    assert main(["user", "create", "alice@example.com", "--password", "long-enough-pw"]) == 0
    assert main(["user", "create", "bob@example.com", "--password", "short"]) == 1
    assert "at least" in capsys.readouterr().err

    assert main(["token", "create", "--user", "alice@example.com", "--label", "ci", "--scope", "publish:all"]) == 0
    secret = capsys.readouterr().out.strip().splitlines()[-1]
    assert secret.startswith("rp_")

    assert main(["token", "create", "--user", "nobody@example.com", "--label", "ci", "--scope", "read:all"]) == 1
    assert "not found" in capsys.readouterr().err

    assert main(["token", "list"]) == 0
    assert "ci\t" in capsys.readouterr().out

    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert main(["token", "delete", "ci"]) == 1
    assert "Aborted." in capsys.readouterr().err

    assert main(["token", "delete", "ci", "--yes"]) == 0
    assert main(["token", "delete", "ci", "--yes"]) == 1


def test_storage_stage_show_activate(tmp_path, capsys):
    target = tmp_path / "next-storage"
    assert main(["storage", "migrate", "--yes"]) == 1
    assert "error:" in capsys.readouterr().err

    assert main(["storage", "stage", "--backend", "local", "--path", str(target)]) == 0
    capsys.readouterr()
    assert main(["storage", "show"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["active"]["backend"] == "local"
    assert shown["pending"]["localPath"] == str(target)

    assert main(["storage", "preview"]) == 0
    assert main(["storage", "migrate", "--yes"]) == 0
    assert main(["storage", "verify"]) == 0
    capsys.readouterr()

    assert main(["storage", "activate", "--yes"]) == 0
    capsys.readouterr()
    assert main(["storage", "show"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["active"]["localPath"] == str(target)
    assert shown["pending"] is None


def test_backup_export_then_restore_into_fresh_database(tmp_path, capsys, monkeypatch):
    assert main(["user", "create", "alice@example.com", "--password", "long-enough-pw"]) == 0
    assert main(["token", "create", "--user", "alice@example.com", "--label", "ci", "--scope", "read:all"]) == 0
    backup_file = tmp_path / "backups" / "catalog.json"
    assert main(["storage", "backup", "export", str(backup_file)]) == 0
    capsys.readouterr()
    document = json.loads(backup_file.read_text())
    assert document["formatVersion"] == 1
    assert len(document["data"]["users"]) == 1

    assert main(["storage", "backup", "import", str(backup_file), "--yes"]) == 1
    assert "not empty" in capsys.readouterr().err

    fresh = tmp_path / "fresh"
    fresh.mkdir()
    for key, value in registry_env(fresh).items():
        monkeypatch.setenv(key, value)
    assert main(["storage", "backup", "import", str(backup_file), "--dry-run"]) == 0
    assert json.loads(capsys.readouterr().out.split("\n", 1)[1])["auth_tokens"] == 1
    assert main(["token", "list"]) == 0
    assert "ci\t" not in capsys.readouterr().out

    assert main(["storage", "backup", "import", str(backup_file), "--yes"]) == 0
    capsys.readouterr()
    assert main(["token", "list"]) == 0
    assert "ci\t" in capsys.readouterr().out


def test_backup_import_of_missing_file_fails(tmp_path, capsys):
    assert main(["storage", "backup", "import", str(tmp_path / "absent.json"), "--yes"]) == 1
    assert "not found" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signal handlers")
@pytest.mark.asyncio
async def test_sigint_during_a_storage_run_requests_a_stop():
    stop = asyncio.Event()
    migration = StorageMigration(metadata=None, source=None, target=None, stop=stop)
    with _stop_on_interrupt(migration):
        os.kill(os.getpid(), signal.SIGINT)
        for _ in range(100):
            if stop.is_set():
                break
            await asyncio.sleep(0.01)
    assert stop.is_set()
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
