"""Command line entry points."""

import asyncio
import json
import sys

import pytest

from billprint.config.settings import AppSettings
from billprint.main import (
    build_delivery,
    build_parser,
    main,
    parse_assignments,
    run_preview,
    run_printers,
    run_settings,
)
from billprint.printing.delivery import NativePrintDelivery, RawSpoolDelivery


def app_settings(tmp_path, **overrides):
    return AppSettings(data_dir=tmp_path, **overrides)


def test_parse_assignments():
    assert parse_assignments(["width=80", "silentPrinting=false", "deviceName=POS-80"]) == {
        "width": 80,
        "silentPrinting": False,
        "deviceName": "POS-80",
    }
    with pytest.raises(ValueError):
        parse_assignments(["width"])


def test_settings_set_and_show(tmp_path, capsys):
    settings = app_settings(tmp_path)

    assert run_settings("set", ["width=58", "deviceName=TM-T20"], settings) == 0
    capsys.readouterr()
    assert run_settings("show", [], settings) == 0

    shown = json.loads(capsys.readouterr().out)
    assert shown["width"] == 58.0
    assert shown["deviceName"] == "TM-T20"
    assert shown["silentPrinting"] is True
    assert (tmp_path / "print-settings.json").exists()


def test_preview(tmp_path, capsys):
    document = tmp_path / "order.json"
    document.write_text(json.dumps({"id": "o-5", "items": [{"name": "Tea", "quantity": 1}]}), encoding="utf-8")
    output = tmp_path / "order.bin"

    assert run_preview(document, "kot", output) == 0
    out = capsys.readouterr().out
    assert "KITCHEN ORDER TICKET" in out
    assert "1 x Tea" in out
    assert output.read_bytes().startswith(b"\x1b@")


def test_build_delivery(tmp_path):
    assert isinstance(build_delivery(app_settings(tmp_path)), NativePrintDelivery)
    raw = build_delivery(app_settings(tmp_path, delivery_mode="raw", bridge_path=tmp_path / "print-raw.exe"))
    assert isinstance(raw, RawSpoolDelivery)


def test_settings_paths(tmp_path):
    settings = app_settings(tmp_path, artifact_dir=tmp_path / "jobs")
    assert settings.settings_path == tmp_path / "print-settings.json"
    assert settings.error_log_path == tmp_path / "billprint-log.txt"
    assert settings.resolve_artifact_dir() == tmp_path / "jobs"
    assert settings.job_timeout == 20.0
    assert settings.cleanup_delay == 1.5


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_main_exits_with_error_for_bad_document(tmp_path):
    document = tmp_path / "bill.json"
    document.write_text("[]", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        main(["preview", str(document), "--kind", "bill"])
    assert exc.value.code == 1


@pytest.mark.skipif(sys.platform == "win32", reason="shell script stand-in for lpstat")
def test_printers_command(tmp_path, capsys):
    lpstat = tmp_path / "lpstat"
    lpstat.write_text(
        "#!/bin/sh\n"
        "echo 'printer POS-80 is idle.  enabled since Mon 01 Jan 2024'\n"
        "echo 'printer Office disabled since Mon 01 Jan 2024 -'\n"
        "echo 'system default destination: POS-80'\n",
        encoding="utf-8",
    )
    lpstat.chmod(0o755)

    assert asyncio.run(run_printers(False, str(lpstat))) == 0
    assert capsys.readouterr().out.splitlines() == ["* POS-80 (idle)", "  Office (disabled)"]

    assert asyncio.run(run_printers(True, str(lpstat))) == 0
    listed = json.loads(capsys.readouterr().out)
    assert listed[0] == {"name": "POS-80", "status": "idle", "enabled": True, "isDefault": True}


def test_printers_is_a_command():
    args = build_parser().parse_args(["printers", "--json"])
    assert args.command == "printers"
    assert args.json is True
