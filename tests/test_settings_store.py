"""Print settings: per-field fallback on load, strict normalization on save."""

import json

import pytest

from billprint.config.store import (
    DEFAULT_SETTINGS,
    PrintSettings,
    PrintSettingsStore,
    normalize_settings,
    parse_positive_float,
)
from billprint.errors import SettingsError


def write_record(path, record):
    path.write_text(json.dumps(record), encoding="utf-8")


def test_defaults():
    assert DEFAULT_SETTINGS.width == 88.0
    assert DEFAULT_SETTINGS.height == 279.0
    assert DEFAULT_SETTINGS.scale_factor == 1.0
    assert DEFAULT_SETTINGS.silent_printing is True
    assert DEFAULT_SETTINGS.device_name is None


def test_missing_file_loads_defaults(tmp_path):
    store = PrintSettingsStore(tmp_path / "print-settings.json")
    assert store.load() == DEFAULT_SETTINGS
    assert store.current == DEFAULT_SETTINGS


def test_corrupt_file_loads_defaults(tmp_path):
    path = tmp_path / "print-settings.json"
    path.write_text("{not json", encoding="utf-8")
    assert PrintSettingsStore(path).load() == DEFAULT_SETTINGS


def test_non_object_record_loads_defaults(tmp_path):
    path = tmp_path / "print-settings.json"
    write_record(path, [80, 200])
    assert PrintSettingsStore(path).load() == DEFAULT_SETTINGS


def test_bad_field_falls_back_alone(tmp_path):
    path = tmp_path / "print-settings.json"
    write_record(path, {"width": 80, "height": 200, "scaleFactor": "abc"})

    settings = PrintSettingsStore(path).load()
    assert settings.width == 80.0
    assert settings.height == 200.0
    assert settings.scale_factor == 1.0


def test_load_keeps_default_for_non_boolean_silent(tmp_path):
    path = tmp_path / "print-settings.json"
    write_record(path, {"silentPrinting": "no", "deviceName": "POS-80"})

    settings = PrintSettingsStore(path).load()
    assert settings.silent_printing is True
    assert settings.device_name == "POS-80"


@pytest.mark.parametrize("value", [None, True, "abc", -5, 0, float("inf"), float("nan")])
def test_parse_positive_float_rejects(value):
    assert parse_positive_float(value, 7.0) == 7.0


def test_parse_positive_float_accepts_numeric_strings():
    assert parse_positive_float("58.5", 7.0) == 58.5


def test_save_normalizes_strictly(tmp_path):
    store = PrintSettingsStore(tmp_path / "print-settings.json")
    saved = store.save({
        "width": "58",
        "height": -1,
        "scaleFactor": 0.9,
        "silentPrinting": "true",
        "deviceName": "",
    })

    assert saved.width == 58.0
    assert saved.height == 279.0
    assert saved.scale_factor == 0.9
    assert saved.silent_printing is False
    assert saved.device_name is None
    assert store.current == saved


def test_save_persists_record(tmp_path):
    path = tmp_path / "data" / "print-settings.json"
    store = PrintSettingsStore(path)
    store.save(PrintSettings(width=80, height=297, scale_factor=1.1, silent_printing=True, device_name="TM-T82"))

    record = json.loads(path.read_text(encoding="utf-8"))
    assert record == {
        "width": 80.0,
        "height": 297.0,
        "scaleFactor": 1.1,
        "silentPrinting": True,
        "deviceName": "TM-T82",
    }
    assert [p.name for p in path.parent.iterdir()] == ["print-settings.json"]
    assert PrintSettingsStore(path).load() == store.current


def test_save_does_not_touch_existing_snapshots(tmp_path):
    store = PrintSettingsStore(tmp_path / "print-settings.json")
    snapshot = store.current
    store.save({"width": 58, "silentPrinting": True})

    assert snapshot.width == 88.0
    assert store.current.width == 58.0


def test_failed_save_keeps_current(tmp_path):
    path = tmp_path / "sub" / "print-settings.json"
    path.mkdir(parents=True)  # a directory where the file should go
    store = PrintSettingsStore(path)

    with pytest.raises(SettingsError):
        store.save({"width": 58})
    assert store.current == DEFAULT_SETTINGS
    assert [p.name for p in path.parent.iterdir()] == ["print-settings.json"]


def test_aliases_and_record():
    settings = PrintSettings(scaleFactor=2, silentPrinting=False, deviceName="X")
    assert settings.scale_factor == 2.0
    assert settings.to_record()["silentPrinting"] is False
    assert normalize_settings(settings.to_record()) == settings


def test_query_params(tmp_path):
    store = PrintSettingsStore(tmp_path / "print-settings.json")
    store.save({"width": 80, "height": 297.5, "scaleFactor": 1, "silentPrinting": False})
    assert store.to_query_params() == {
        "width": "80",
        "height": "297.5",
        "scaleFactor": "1",
        "silentPrinting": "false",
    }
