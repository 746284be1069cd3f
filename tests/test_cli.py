import pytest
import buildsweep.cli as cli
from buildsweep.cli import EXIT_ERROR, EXIT_OK, EXIT_PARTIAL, main, parse_maxsize
from buildsweep.engine.errors import DeletionFailed
from buildsweep.stamp import STAMP_FILE, Timestamp
from buildsweep.toolchains import ToolchainError

MIB = 1024 * 1024


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    monkeypatch.delenv("BUILDSWEEP_CONFIG", raising=False)
    monkeypatch.setenv("BUILDSWEEP_LOGGING__COLOR", "false")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def project(scenario, monkeypatch):
    monkeypatch.setattr(cli, "target_directory", lambda path, cargo="cargo": scenario.root)
    return scenario


def _records(target):
    return sorted(p.name for p in (target.root / "debug" / ".fingerprint").iterdir())


def test_mode_is_required(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2


def test_modes_are_exclusive():
    with pytest.raises(SystemExit):
        main(["-t", "3", "--maxsize", "10"])


def test_maxsize_dry_run(project, capsys):
    assert main(["--maxsize", "15"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "35.00 MiB would be cleaned" in out
    assert len(_records(project)) == 3


def test_maxsize_delete(project, capsys):
    assert main(["--maxsize", "30", "-d"]) == EXIT_OK
    assert "5.00 MiB cleaned" in capsys.readouterr().out
    assert _records(project) == ["alpha-aaaa000000000001", "beta-bbbb000000000002"]


def test_time(project, capsys):
    assert main(["-t", "2"]) == EXIT_OK
    assert "15.00 MiB would be cleaned" in capsys.readouterr().out


def test_invalid_maxsize(project, capsys):
    assert main(["--maxsize", "lots"]) == EXIT_ERROR
    assert "invalid size" in capsys.readouterr().out


def test_invalid_time(project, capsys):
    assert main(["-t", "forever"]) == EXIT_ERROR
    assert "invalid duration" in capsys.readouterr().out


def test_toolchains(project, monkeypatch, capsys):
    monkeypatch.setattr(cli, "resolve_keep_set", lambda names, config=None: set(names))
    assert main(["--toolchains", "1.70.0", "-d"]) == EXIT_OK
    assert "20.00 MiB cleaned" in capsys.readouterr().out
    assert _records(project) == ["alpha-aaaa000000000001", "gamma-cccc000000000003"]


def test_installed(project, monkeypatch, capsys):
    monkeypatch.setattr(cli, "installed_toolchain_ids", lambda config=None: {"1.65.0"})
    assert main(["-i"]) == EXIT_OK
    assert "10.00 MiB would be cleaned" in capsys.readouterr().out


def test_installed_unresolvable(project, monkeypatch, capsys):
    def fail(config=None):
        raise ToolchainError("rustup not found")

    monkeypatch.setattr(cli, "installed_toolchain_ids", fail)
    assert main(["-i"]) == EXIT_ERROR
    assert "rustup not found" in capsys.readouterr().out
    assert len(_records(project)) == 3


def test_stamp_then_file(project, tmp_path, now):
    assert main(["-s", str(tmp_path)]) == EXIT_OK
    assert (tmp_path / STAMP_FILE).exists()
    Timestamp(int(now - 2 * 86400)).store(tmp_path)
    assert main(["-f", str(tmp_path), "-d"]) == EXIT_OK
    assert _records(project) == ["beta-bbbb000000000002"]


def test_file_without_stamp(project, tmp_path, capsys):
    assert main(["-f", str(tmp_path)]) == EXIT_ERROR
    assert "--stamp" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [
    ["-t", "1000000000"],
    ["--maxsize", "9" * 400],
])
def test_out_of_range_input(project, argv, capsys):
    assert main(argv) == EXIT_ERROR
    assert "out of range" in capsys.readouterr().out
    assert len(_records(project)) == 3


def test_not_a_project(monkeypatch, capsys):
    monkeypatch.setattr(cli, "target_directory", lambda path, cargo="cargo": None)
    assert main(["-t", "1"]) == EXIT_ERROR
    assert "not a cargo project" in capsys.readouterr().out


def test_recursive_continues_after_failed_root(scenario, tmp_path, monkeypatch, capsys):
    missing = tmp_path / "gone" / "target"
    monkeypatch.setattr(cli, "find_cargo_projects",
                        lambda path, include_hidden=False, cargo="cargo": [missing, scenario.root])
    assert main(["-r", "--maxsize", "0", "-d"]) == EXIT_ERROR
    out = capsys.readouterr().out
    assert "Failed to clean" in out
    assert "35.00 MiB cleaned" in out
    assert _records(scenario) == []


def test_recursive_without_projects(monkeypatch):
    monkeypatch.setattr(cli, "find_cargo_projects", lambda path, include_hidden=False, cargo="cargo": [])
    assert main(["-r", "-t", "1"]) == EXIT_OK


def test_partial_failure_exit_code(project, monkeypatch, capsys):
    import buildsweep.engine.executor as executor_module

    def deny(path):
        raise DeletionFailed(path, PermissionError(13, "Permission denied"))

    monkeypatch.setattr(executor_module, "_remove_entry", deny)
    assert main(["--maxsize", "0", "-d"]) == EXIT_PARTIAL
    assert "could not be fully removed" in capsys.readouterr().out
    assert len(_records(project)) == 3


def test_debug_output_lists_units(project, capsys):
    assert main(["-D", "--maxsize", "20"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "gamma-cccc000000000003" in out
    assert "keep" in out


def test_verbose_and_config_file(project, tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("BUILDSWEEP_LOGGING__COLOR")
    cfg = tmp_path / "sweep.yaml"
    cfg.write_text("logging:\n  color: true\n")
    assert main(["-v", "--config", str(cfg), "-t", "2"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "\x1b[" in out
    assert "DEBUG" in out


def test_parse_maxsize():
    assert parse_maxsize("15") == 15 * MIB
    assert parse_maxsize("2G") == 2 * 1024 * MIB
