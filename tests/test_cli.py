import json

from nearask.cli import main


def _run(capsys, data_dir, *args) -> tuple[int, str, str]:
    code = main(["--data-dir", str(data_dir), *args])
    out, err = capsys.readouterr()
    return code, out.strip(), err.strip()


def test_cli_round_trip(tmp_path, capsys):
    code, rid, _ = _run(capsys, tmp_path, "create", "--user", "alice", "--title", "Line at the bakery?", "--lat", "35.6812", "--lon", "139.7671")
    assert code == 0

    code, out, _ = _run(capsys, tmp_path, "--json", "nearby", "--radius-km", "1")
    assert code == 0
    hits = json.loads(out)
    assert [h["request"]["id"] for h in hits] == [rid]

    code, response_id, _ = _run(capsys, tmp_path, "answer", rid, "--user", "bob", "--comment", "about 10 people")
    assert code == 0

    code, out, _ = _run(capsys, tmp_path, "nearby", "--radius-km", "1")
    assert out == "No open requests nearby."

    code, out, _ = _run(capsys, tmp_path, "complete", rid, response_id, "--user", "alice")
    assert code == 0

    code, out, _ = _run(capsys, tmp_path, "--json", "show", rid)
    detail = json.loads(out)
    assert detail["request"]["status"] == "completed"
    assert detail["response"]["completed_at"]

    code, out, _ = _run(capsys, tmp_path, "mine", "--user", "alice")
    assert rid in out and "[completed]" in out


def test_cli_reports_lifecycle_errors(tmp_path, capsys):
    code, rid, _ = _run(capsys, tmp_path, "create", "--user", "alice", "--title", "q", "--lat", "0", "--lon", "0")
    assert code == 0

    code, _, err = _run(capsys, tmp_path, "delete", rid, "--user", "mallory")
    assert code == 2
    assert err.startswith("error: FORBIDDEN:")

    code, _, err = _run(capsys, tmp_path, "answer", "missing", "--user", "bob", "--comment", "hi")
    assert code == 2
    assert "NOT_FOUND" in err


def test_cli_rejects_invalid_input(tmp_path, capsys):
    code, _, err = _run(capsys, tmp_path, "create", "--user", "alice", "--title", "q", "--lat", "95", "--lon", "0")
    assert code == 2
    assert "VALIDATION_ERROR" in err
