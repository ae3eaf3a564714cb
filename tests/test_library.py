import sys
from pathlib import Path
import json

import pytest

# Ensure project root on sys.path for direct `python tests/test_library.py` runs.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from privacydash import library  # noqa: E402
from privacydash.crypto import Cipher  # noqa: E402
from privacydash.keymanager import VaultKeyManager  # noqa: E402
from privacydash.schemas import PrivateInvoiceData, RequestStatus  # noqa: E402
from privacydash.slots import MemorySlotStore  # noqa: E402
from privacydash.store import RequestStore  # noqa: E402


def _vault():
    slots = MemorySlotStore()
    keys = VaultKeyManager(slots)
    return keys, Cipher(keys), RequestStore(slots)


def _create(store, cipher, **overrides):
    params = {
        "creator": "wallet-A",
        "amount": 1.5,
        "label": "Payment for Consulting",
        "title": "March retainer",
        "items": [{"description": "Design review", "amount": 1.0}, {"description": "", "amount": 0}],
        "notes": "Net 7",
    }
    params.update(overrides)
    return library.create_request(store, cipher, **params)


def test_create_request_keeps_private_fields_encrypted():
    _, cipher, store = _vault()
    request = _create(store, cipher)
    stored = store.slots.get("privacy_dash_v1_mainnet")
    assert "March retainer" not in stored
    assert "Design review" not in stored
    assert "Payment for Consulting" in stored
    assert request.token_mint == "SOL"

    invoice = library.unlock(request, cipher)
    assert invoice.title == "March retainer"
    assert [item.description for item in invoice.items] == ["Design review"]
    assert invoice.notes == "Net 7"


def test_title_falls_back_to_label():
    _, cipher, store = _vault()
    request = _create(store, cipher, title="", items=None, notes="")
    assert library.unlock(request, cipher) == PrivateInvoiceData(title="Payment for Consulting")


def test_unlock_after_reset_returns_none():
    keys, cipher, store = _vault()
    request = _create(store, cipher)
    keys.reset_key()
    assert library.unlock(request, cipher) is None


def test_unlock_request_without_ciphertext():
    _, cipher, store = _vault()
    request = store.create({"amount": 1}, "wallet-A")
    assert library.unlock(request, cipher) is None


def test_payment_link_view_hides_private_payload():
    _, cipher, store = _vault()
    request = _create(store, cipher)
    assert library.payment_link(request.id, "https://dash.example/") == f"https://dash.example/pay/{request.id}"
    view = library.open_payment_link(store, request.id)
    assert "ciphertext" not in view
    assert view["status"] == "PENDING"
    assert view["creator"] == "wallet-A"
    assert library.open_payment_link(store, "missing") is None


def test_receipts_list_only_paid_requests():
    _, cipher, store = _vault()
    first = _create(store, cipher)
    _create(store, cipher)
    store.mark_paid(first.id, "sigX", "wallet-B")
    receipts = library.list_receipts(store, "wallet-A")
    assert [r.id for r in receipts] == [first.id]
    assert receipts[0].status == RequestStatus.PAID


def test_export_receipt_with_and_without_key():
    keys, cipher, store = _vault()
    request = store.mark_paid(_create(store, cipher).id, "sigX", "wallet-B")
    receipt = library.export_receipt(request, cipher)
    assert receipt["signature"] == "sigX"
    assert receipt["private_data"]["title"] == "March retainer"
    json.dumps(receipt)

    keys.reset_key()
    assert library.export_receipt(request, cipher)["private_data"] == library.ENCRYPTED_PLACEHOLDER


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
