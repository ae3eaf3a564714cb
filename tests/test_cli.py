import sys
from pathlib import Path
import json
import tempfile

import pytest

# Ensure project root on sys.path for direct execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from privacydash import cli  # noqa: E402
from privacydash.slots import SqlSlotStore  # noqa: E402
from privacydash.store import RequestStore  # noqa: E402


def _run(db, *argv):
    cli.main(["--db", db, *argv])


def test_create_unlock_and_receipt(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        db = f"sqlite:///{Path(tmp) / 'cli.db'}"
        _run(db, "create", "wallet-A", "--amount", "0.5", "--label", "Logo", "--title", "Brand kit",
             "--item", "Logo design=0.4", "--item", "Revisions=0.1", "--notes", "thanks")
        request = RequestStore(SqlSlotStore(db)).list_all("wallet-A")[0]
        assert f"/pay/{request.id}" in capsys.readouterr().out

        _run(db, "unlock", request.id)
        invoice = json.loads(capsys.readouterr().out)
        assert invoice["title"] == "Brand kit"
        assert invoice["items"][0] == {"description": "Logo design", "amount": 0.4}

        _run(db, "mark-paid", request.id, "sigX", "wallet-B")
        out = Path(tmp) / "receipt.json"
        _run(db, "receipt", request.id, str(out))
        receipt = json.loads(out.read_text())
        assert receipt["status"] == "PAID"
        assert receipt["private_data"]["notes"] == "thanks"

        capsys.readouterr()
        _run(db, "stats", "wallet-A")
        assert json.loads(capsys.readouterr().out)["total_collected"] == pytest.approx(0.5)


def test_key_backup_reset_and_restore(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        db = f"sqlite:///{Path(tmp) / 'cli.db'}"
        backup = Path(tmp) / "privacy-dash-vault-key.json"
        _run(db, "create", "wallet-A", "--amount", "1", "--title", "Private")
        request_id = RequestStore(SqlSlotStore(db)).list_all()[0].id
        _run(db, "key-export", str(backup))

        with pytest.raises(SystemExit):
            _run(db, "key-reset")
        _run(db, "key-reset", "--yes")
        capsys.readouterr()
        _run(db, "unlock", request_id)
        assert "Cannot decrypt" in capsys.readouterr().out

        _run(db, "key-import", str(backup))
        capsys.readouterr()
        _run(db, "unlock", request_id)
        assert json.loads(capsys.readouterr().out)["title"] == "Private"


def test_unknown_request_exits_with_error(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        db = f"sqlite:///{Path(tmp) / 'cli.db'}"
        with pytest.raises(SystemExit) as excinfo:
            _run(db, "cancel", "missing")
        assert excinfo.value.code == 1
        assert "No request missing" in capsys.readouterr().err


def test_bad_line_item_is_rejected():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["create", "wallet-A", "--amount", "1", "--item", "no amount"])


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
