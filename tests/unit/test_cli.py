from __future__ import annotations

from pathlib import Path

import pytest

from query_endpoint import __version__
from query_endpoint.runtime import lifecycle


def _fail_if_run(cfg):  # noqa: ANN001
    raise AssertionError("orchestration must not start on configuration errors")


@pytest.fixture(autouse=True)
def _no_orchestration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(lifecycle, "run_endpoint", _fail_if_run)


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    assert lifecycle.main(["--version"]) == 0
    assert __version__ in capsys.readouterr().out


def test_required_flags(capsys: pytest.CaptureFixture[str]) -> None:
    assert lifecycle.main(["-s", "T"]) == 2
    assert "--executable-script" in capsys.readouterr().err


def test_invalid_port_exits_before_orchestration(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = lifecycle.main(["-s", "T", "-x", str(tmp_path / "s.sh"), "-p", "eighty"])

    assert code == 2
    err = capsys.readouterr().err
    assert "InvalidArgument" in err
    assert "eighty" in err


def test_missing_script_is_precondition_failure(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = lifecycle.main(["-s", "T", "-x", str(tmp_path / "missing.sh")])

    assert code == 2
    assert "PreconditionFailed" in capsys.readouterr().err


def test_output_dir_missing_is_precondition_failure(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    script = tmp_path / "s.sh"
    script.write_text("#!/bin/sh\n", encoding="utf-8")
    script.chmod(0o755)

    code = lifecycle.main(["-s", "T", "-x", str(script), "-o", str(tmp_path / "nope" / "out.txt")])

    assert code == 2
    assert "PreconditionFailed" in capsys.readouterr().err


def test_bad_settings_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings = tmp_path / "endpoint.yaml"
    settings.write_text("endpoint:\n  terminate_grace_s: soon\n", encoding="utf-8")

    code = lifecycle.main(["-s", "T", "-x", str(tmp_path / "s.sh"), "-c", str(settings)])

    assert code == 2
    assert "ConfigError" in capsys.readouterr().err
