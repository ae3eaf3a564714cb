from datetime import datetime
from typing import Dict, Iterable, List, Optional

from . import config
from .crypto import Cipher
from .schemas import LineItem, PaymentRequest, PrivateInvoiceData, RequestDraft, RequestStatus
from .store import RequestStore

ENCRYPTED_PLACEHOLDER = "ENCRYPTED"


def create_request(
    store: RequestStore,
    cipher: Cipher,
    creator: str,
    amount: float,
    label: Optional[str] = None,
    icon: Optional[str] = None,
    title: str = "",
    items: Optional[Iterable[LineItem | Dict]] = None,
    notes: str = "",
    expires_at: Optional[datetime] = None,
) -> PaymentRequest:
    """
    Merchant flow: seal the private invoice under the vault key, then store the request
    with only public metadata in clear. Line items without a description are dropped and
    the title falls back to the public label.
    """
    line_items = [LineItem.model_validate(item) for item in (items or [])]
    invoice = PrivateInvoiceData(
        title=title or label or config.DEFAULT_LABEL,
        items=[item for item in line_items if item.description],
        notes=notes,
    )
    draft = RequestDraft(
        amount=amount,
        token_mint=config.DEFAULT_TOKEN_MINT,
        label=label,
        icon=icon,
        ciphertext=cipher.seal_invoice(invoice),
        expires_at=expires_at,
    )
    return store.create(draft, creator)


def unlock(request: PaymentRequest, cipher: Cipher) -> Optional[PrivateInvoiceData]:
    """Private invoice of a request, or None when it cannot be read with the current key."""
    if not request.ciphertext:
        return None
    return cipher.open_invoice(request.ciphertext)


def payment_link(request_id: str, base_url: str = "") -> str:
    return f"{base_url.rstrip('/')}/pay/{request_id}"


def open_payment_link(store: RequestStore, request_id: str, now: Optional[datetime] = None) -> Optional[Dict]:
    """What an unauthenticated payer sees for /pay/{id}; never includes the ciphertext."""
    request = store.get(request_id)
    return request.public_view(now) if request else None


def list_receipts(store: RequestStore, creator: str) -> List[PaymentRequest]:
    return [r for r in store.list_all(creator) if r.status == RequestStatus.PAID]


def export_receipt(request: PaymentRequest, cipher: Cipher) -> Dict:
    """Receipt document: the stored record plus its decrypted invoice, or a placeholder."""
    receipt = request.model_dump(mode="json")
    invoice = unlock(request, cipher)
    receipt["private_data"] = invoice.model_dump(mode="json") if invoice else ENCRYPTED_PLACEHOLDER
    return receipt
