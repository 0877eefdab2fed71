import getpass
import json
from pathlib import Path

import pytest

from packer_sync import cli
from packer_sync.cli import main


def test_list_prints_decoded_manifests(tmp_path: Path, capsys) -> None:
    (tmp_path / "billing.json").write_text(
        json.dumps({"artifact": "https://ci.example.com/billing.tgz", "revision": "d" * 40}),
        encoding="utf-8",
    )
    assert main(["list", "--root", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert out.strip() == f"billing\t{'d' * 40}\thttps://ci.example.com/billing.tgz"


def test_sync_without_manifests_is_fatal(tmp_path: Path, capsys) -> None:
    code = main(
        [
            "sync",
            "--root",
            str(tmp_path),
            "--download-dir",
            str(tmp_path / "downloads_tmp"),
        ]
    )
    assert code == 1
    assert capsys.readouterr().out == ""


def test_missing_config_file_is_a_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["sync", "--config", str(tmp_path / "absent.yaml")])
    assert excinfo.value.code == 2


def test_sync_without_a_known_user_is_fatal(tmp_path: Path, monkeypatch, capsys) -> None:
    def no_user() -> str:
        raise OSError("No username set in the environment")

    monkeypatch.setattr(getpass, "getuser", no_user)
    (tmp_path / "billing.json").write_text(
        json.dumps({"artifact": "https://ci.example.com/billing.tgz", "revision": "d" * 40}),
        encoding="utf-8",
    )
    code = main(["sync", "--root", str(tmp_path), "--download-dir", str(tmp_path / "dl")])
    assert code == 1
    assert capsys.readouterr().out == ""
    assert not (tmp_path / "dl").exists()


def test_config_file_is_read_once_per_invocation(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "sync.yaml"
    path.write_text(f"paths:\n  manifest_root: {tmp_path}\n", encoding="utf-8")
    (tmp_path / "billing.json").write_text(json.dumps({"artifact": "", "revision": ""}), encoding="utf-8")
    seen: list[Path | None] = []
    real_load = cli.load_config

    def counting_load(config_path):
        seen.append(config_path)
        return real_load(config_path)

    monkeypatch.setattr(cli, "load_config", counting_load)
    assert main(["list", "--config", str(path)]) == 0
    assert seen == [path]
