"""Tests for the template command-line tools."""

import json
from datetime import datetime, timezone

from appointment_engine.cli import main
from appointment_engine.schemas.template_schema import DayOfWeek
from tests.conftest import make_block, make_exception, make_template


def write_template(tmp_path, template=None):
    path = tmp_path / "template.json"
    path.write_text((template or make_template()).model_dump_json(), encoding="utf-8")
    return path


class TestPreview:
    def test_prints_slots(self, tmp_path, capsys):
        path = write_template(tmp_path)
        code = main([
            "preview", "--template", str(path),
            "--start", "2025-03-03", "--end", "2025-03-03", "--now", "2025-03-01T12:00:00+00:00",
        ])
        assert code == 0
        slots = json.loads(capsys.readouterr().out)
        assert [s["local_start"] for s in slots] == ["09:00", "09:30"]
        assert slots[0]["start_time"].startswith("2025-03-03T14:00:00")

    def test_exceptions_and_blocked(self, tmp_path, capsys):
        path = write_template(tmp_path)
        exception = make_exception(
            datetime(2025, 3, 3, 14, tzinfo=timezone.utc),
            datetime(2025, 3, 3, 14, 30, tzinfo=timezone.utc),
        )
        exceptions_path = tmp_path / "exceptions.json"
        exceptions_path.write_text(json.dumps([exception.model_dump(mode="json")]), encoding="utf-8")
        code = main([
            "preview", "--template", str(path), "--exceptions", str(exceptions_path),
            "--start", "2025-03-03", "--end", "2025-03-03",
            "--now", "2025-03-01T12:00:00+00:00", "--show-blocked",
        ])
        assert code == 0
        slots = json.loads(capsys.readouterr().out)
        assert [s["status"] for s in slots] == ["blocked", "available"]

    def test_boundary_check_uses_block_overrides(self, tmp_path, capsys, caplog):
        template = make_template(days={DayOfWeek.MON: [
            make_block("09:00", "10:00"),
            make_block("13:00", "16:00", 60, 15),
        ]})
        path = write_template(tmp_path, template)
        code = main([
            "preview", "--template", str(path), "--start", "2025-03-03", "--end", "2025-03-03",
            "--now", "2025-03-01T12:00:00+00:00", "--check-boundaries",
        ])
        assert code == 0
        assert len(json.loads(capsys.readouterr().out)) == 4
        assert "Inconsistent slot" not in caplog.text

    def test_output_file(self, tmp_path):
        path = write_template(tmp_path)
        output = tmp_path / "slots.json"
        main([
            "preview", "--template", str(path), "--start", "2025-03-03", "--end", "2025-03-03",
            "--now", "2025-03-01T12:00:00+00:00", "--output", str(output),
        ])
        assert len(json.loads(output.read_text(encoding="utf-8"))) == 2

    def test_missing_template_file(self, tmp_path):
        assert main(["preview", "--template", str(tmp_path / "nope.json")]) == 1

    def test_malformed_template(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"id": "x"}', encoding="utf-8")
        assert main(["preview", "--template", str(path)]) == 1


class TestValidate:
    def test_valid(self, tmp_path, capsys):
        assert main(["validate", "--template", str(write_template(tmp_path))]) == 0
        assert "is valid" in capsys.readouterr().out

    def test_invalid(self, tmp_path, capsys):
        template = make_template(days={
            DayOfWeek.FRI: [make_block("09:00", "12:00"), make_block("10:00", "11:00")],
        })
        assert main(["validate", "--template", str(write_template(tmp_path, template))]) == 1
        assert "overlaps" in capsys.readouterr().out
