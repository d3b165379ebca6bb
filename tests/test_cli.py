"""Tests for bagsmith.cli — command line interface."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bagsmith.cli import main
from bagsmith.store.trousseau import StoreError

CONFIG = """
mysql:
  description: MySQL credentials
  data_bag:
    root_password: '%s/mysql/root'
    replication:
      password: '%s/mysql/repl'
ssl:
  data_bag:
    key: '%s/ssl/key'
"""


@pytest.fixture(autouse=True)
def _clean(clean_env):
    yield


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return path


@pytest.fixture
def store(fake_store):
    with patch("bagsmith.store.TrousseauStore", return_value=fake_store):
        yield fake_store


def _subprocess_dispatch(knife_rc: int = 0, ssh_failures: tuple[str, ...] = ()):
    """Fake subprocess.run answering knife and ssh calls."""
    calls: list[list[str]] = []

    def fake_run(argv, **kwargs):
        calls.append(argv)
        if argv[0] == "knife":
            return MagicMock(returncode=knife_rc, stderr="" if knife_rc == 0 else "ERROR: 401")
        if argv[0] == "ssh":
            target = argv[argv.index("--") + 1]
            failed = target in ssh_failures
            return MagicMock(returncode=255 if failed else 0, stderr="Connection refused" if failed else "")
        raise AssertionError(f"unexpected command {argv}")

    return fake_run, calls


class TestCli:
    def test_version(self, capsys):
        rc = main(["version"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "bagsmith" in out
        assert "0.1.0" in out

    def test_version_flag_without_config(self, capsys, tmp_path):
        rc = main(["--config", str(tmp_path / "missing.yaml"), "--version"])
        assert rc == 0
        assert "bagsmith" in capsys.readouterr().out

    def test_no_args(self, config_file):
        assert main(["--config", str(config_file)]) == 0

    def test_missing_config(self, capsys, tmp_path):
        rc = main(["--config", str(tmp_path / "missing.yaml"), "mysql", "web1"])
        assert rc == 5
        assert "Config file not found" in capsys.readouterr().out

    def test_config_from_env(self, capsys, config_file, monkeypatch):
        monkeypatch.setenv("BAGSMITH_CONFIG", str(config_file))
        rc = main(["list"])
        assert rc == 0
        assert "mysql" in capsys.readouterr().out

    def test_list(self, capsys, config_file):
        rc = main(["--config", str(config_file), "list"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "MySQL credentials" in out
        assert "Create/Upload encrypted data bag for ssl" in out

    def test_unknown_databag(self, config_file):
        with pytest.raises(SystemExit):
            main(["--config", str(config_file), "redis", "web1"])


class TestDataBagCommand:
    def test_full_run(self, capsys, config_file, store):
        store.data.update({"db1/mysql/root": "rootpw", "db1/mysql/repl": "replpw"})
        fake_run, calls = _subprocess_dispatch()

        with patch("subprocess.run", side_effect=fake_run):
            rc = main(
                ["--config", str(config_file), "mysql", "db1", "--target", "root@db1,ops@db1-backup"]
            )

        assert rc == 0
        assert [c[0] for c in calls] == ["knife", "ssh", "ssh"]
        assert calls[0][:6] == ["knife", "data", "bag", "from", "file", "mysql"]
        assert calls[1][-2] == "root@db1"
        assert "/etc/chef/mysql_data_bag_secret" in calls[1][-1]
        out = capsys.readouterr().out
        assert "Generated data_bag_secret for db1" in out
        assert "Uploaded mysql/db1" in out
        assert "Copying data_bag_secret to root@db1" in out
        assert "Copying data_bag_secret to ops@db1-backup" in out

    def test_empty_resolution(self, capsys, config_file, store):
        with patch("subprocess.run") as mock_run:
            rc = main(["--config", str(config_file), "mysql", "db1", "--target", "root@db1"])

        assert rc == 1
        assert "No data bag elements found." in capsys.readouterr().out
        mock_run.assert_not_called()
        assert store.writes == []

    def test_id_option(self, capsys, config_file, store):
        store.data["svc.prod/ssl/key"] = "KEY"
        fake_run, _ = _subprocess_dispatch()
        with patch("subprocess.run", side_effect=fake_run):
            rc = main(["--config", str(config_file), "ssl", "svc.prod", "--id", "www.example.com"])
        assert rc == 0
        assert "Uploaded ssl/www_example_com" in capsys.readouterr().out

    def test_upload_failure(self, capsys, config_file, store):
        store.data["db1/mysql/root"] = "rootpw"
        fake_run, calls = _subprocess_dispatch(knife_rc=1)
        with patch("subprocess.run", side_effect=fake_run):
            rc = main(["--config", str(config_file), "mysql", "db1", "--target", "root@db1"])

        assert rc == 2
        assert [c[0] for c in calls] == ["knife"]
        out = capsys.readouterr().out
        assert "failed" in out
        assert "Skipping data_bag_secret copy" in out

    def test_distribution_failure(self, capsys, config_file, store):
        store.data["db1/mysql/root"] = "rootpw"
        fake_run, calls = _subprocess_dispatch(ssh_failures=("a@h1",))
        with patch("subprocess.run", side_effect=fake_run):
            rc = main(
                ["--config", str(config_file), "mysql", "db1", "--target", "a@h1", "--target", "b@h2"]
            )

        assert rc == 3
        assert [c[0] for c in calls] == ["knife", "ssh", "ssh"]
        assert "Connection refused" in capsys.readouterr().out

    def test_store_error(self, capsys, config_file):
        broken = MagicMock()
        broken.get.side_effect = StoreError("Trousseau store not found: ./mysql/trousseau.asc")
        with patch("bagsmith.store.TrousseauStore", return_value=broken):
            rc = main(["--config", str(config_file), "mysql", "db1"])
        assert rc == 4
        assert "Trousseau store not found" in capsys.readouterr().out


class TestPassphrase:
    def test_generates(self, capsys, config_file, store):
        rc = main(["--config", str(config_file), "passphrase", "mysql", "db1"])
        assert rc == 0
        assert len(store.data["db1.passphrase"]) == 50
        assert "Generated db1.passphrase" in capsys.readouterr().out

    def test_existing_kept(self, capsys, config_file, store):
        store.data["db1.passphrase"] = "keep"
        rc = main(["--config", str(config_file), "passphrase", "mysql", "db1"])
        assert rc == 0
        assert store.data["db1.passphrase"] == "keep"
        assert "already exists" in capsys.readouterr().out

    def test_force(self, config_file, store):
        store.data["db1.passphrase"] = "keep"
        rc = main(["--config", str(config_file), "passphrase", "mysql", "db1", "--force"])
        assert rc == 0
        assert store.data["db1.passphrase"] != "keep"


class TestProgressOutput:
    def test_lines_printed_before_each_ssh_call(self, capsys, config_file, store):
        store.data["web1/mysql/root"] = "rootpw"
        seen: dict[str, str] = {}
        printed: list[str] = []

        def fake_run(argv, **kwargs):
            printed.append(capsys.readouterr().out)
            if argv[0] == "ssh":
                seen[argv[argv.index("--") + 1]] = "".join(printed)
            return MagicMock(returncode=0, stderr="")

        with patch("subprocess.run", side_effect=fake_run):
            rc = main(["--config", str(config_file), "mysql", "web1", "--target", "a@h1", "--target", "b@h2"])

        assert rc == 0
        assert list(seen) == ["a@h1", "b@h2"]
        assert "Uploaded mysql/web1" in seen["a@h1"]
        assert "Copying data_bag_secret to a@h1" in seen["a@h1"]
        assert "Copying data_bag_secret to b@h2" not in seen["a@h1"]
        assert "Copying data_bag_secret to b@h2" in seen["b@h2"]

    def test_item_after_target(self, config_file, store):
        store.data["web1/mysql/root"] = "rootpw"
        fake_run, calls = _subprocess_dispatch()
        with patch("subprocess.run", side_effect=fake_run):
            rc = main(["--config", str(config_file), "mysql", "--target", "a@h1", "web1"])

        assert rc == 0
        assert [c[0] for c in calls] == ["knife", "ssh"]
        assert calls[1][-2] == "a@h1"

    def test_store_error_after_upload_still_reports_upload(self, capsys, config_file, store):
        store.data["db1/mysql/root"] = "rootpw"

        def fake_run(argv, **kwargs):
            if argv[0] == "knife":
                store.data.pop("db1/data_bag_secret")
                return MagicMock(returncode=0, stderr="")
            raise AssertionError(f"unexpected command {argv}")

        with patch("subprocess.run", side_effect=fake_run):
            rc = main(["--config", str(config_file), "mysql", "db1", "--target", "root@db1"])

        assert rc == 4
        out = capsys.readouterr().out
        assert "Uploaded mysql/db1" in out
        assert "No data_bag_secret stored for db1" in out
        assert out.index("Uploaded mysql/db1") < out.index("No data_bag_secret")
