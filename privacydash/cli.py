import argparse
import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

from . import config, library
from .crypto import Cipher
from .keymanager import VaultKeyManager
from .schemas import utcnow
from .slots import SqlSlotStore
from .store import ProfileStore, RequestStore


def _write_json(path: Path, data):
    path.write_text(json.dumps(data, indent=2))


def _print_json(data):
    print(json.dumps(data, indent=2))


def _parse_item(raw: str) -> dict:
    description, sep, amount = raw.rpartition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Line item must look like DESCRIPTION=AMOUNT, got {raw!r}")
    try:
        return {"description": description, "amount": float(amount)}
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount in line item {raw!r}") from exc


def _open(args):
    slots = SqlSlotStore(args.db)
    keys = VaultKeyManager(slots)
    return keys, Cipher(keys), RequestStore(slots), ProfileStore(slots)


def cmd_key_export(args):
    keys, _, _, _ = _open(args)
    Path(args.output).write_text(keys.export_key())
    print(f"Vault key backup written to {args.output}")


def cmd_key_import(args):
    keys, _, _, _ = _open(args)
    keys.import_key(Path(args.input).read_text())
    print("Vault key restored from backup")


def cmd_key_reset(args):
    if not args.yes:
        raise ValueError("Resetting the vault key makes every existing invoice unreadable; pass --yes to proceed")
    keys, _, _, _ = _open(args)
    keys.reset_key()
    print("Vault key deleted")


def cmd_create(args):
    _, cipher, store, _ = _open(args)
    expires_at = utcnow() + timedelta(hours=args.expires_in_hours) if args.expires_in_hours else None
    request = library.create_request(
        store,
        cipher,
        creator=args.creator,
        amount=args.amount,
        label=args.label,
        icon=args.icon,
        title=args.title or "",
        items=args.item or [],
        notes=args.notes or "",
        expires_at=expires_at,
    )
    print(f"Created request {request.id}: {library.payment_link(request.id)}")


def cmd_list(args):
    _, _, store, _ = _open(args)
    now = utcnow()
    for request in store.list_all(args.creator):
        print(f"{request.id}  {request.effective_status(now).value:<9}  {request.amount:>12g} {request.token_mint}  {request.label}")


def cmd_show(args):
    _, _, store, _ = _open(args)
    view = library.open_payment_link(store, args.id)
    if view is None:
        raise LookupError(f"No request {args.id}")
    _print_json(view)


def cmd_unlock(args):
    _, cipher, store, _ = _open(args)
    request = store.get(args.id)
    if request is None:
        raise LookupError(f"No request {args.id}")
    invoice = library.unlock(request, cipher)
    if invoice is None:
        print("Cannot decrypt this request with the current vault key")
        return
    _print_json(invoice.model_dump(mode="json"))


def cmd_cancel(args):
    _, _, store, _ = _open(args)
    if store.cancel(args.id) is None:
        raise LookupError(f"No request {args.id}")
    print(f"Request {args.id} cancelled")


def cmd_mark_paid(args):
    _, _, store, _ = _open(args)
    if store.mark_paid(args.id, args.signature, args.payer) is None:
        raise LookupError(f"No request {args.id}")
    print(f"Request {args.id} marked paid")


def cmd_stats(args):
    _, _, store, _ = _open(args)
    _print_json(store.stats(args.creator).model_dump())


def cmd_receipt(args):
    _, cipher, store, _ = _open(args)
    request = store.get(args.id)
    if request is None:
        raise LookupError(f"No request {args.id}")
    _write_json(Path(args.output), library.export_receipt(request, cipher))
    print(f"Receipt written to {args.output}")


def cmd_profile(args):
    _, _, _, profiles = _open(args)
    _print_json(profiles.get_or_create(args.pubkey).model_dump(mode="json"))


def cmd_serve(args):
    import uvicorn  # noqa: WPS433

    from app import main as web  # noqa: WPS433

    web.configure(SqlSlotStore(args.db))
    uvicorn.run(web.app, host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())


def build_parser():
    parser = argparse.ArgumentParser(prog="privacydash", description="Privacy Dash owner console")
    parser.add_argument("--db", default=config.DB_URL, help="SQLAlchemy URL of the local vault database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("key-export", help="Write a backup of the vault master key")
    p_export.add_argument("output", help="Path of the backup file")
    p_export.set_defaults(func=cmd_key_export)

    p_import = sub.add_parser("key-import", help="Restore the vault master key from a backup")
    p_import.add_argument("input", help="Path of the backup file")
    p_import.set_defaults(func=cmd_key_import)

    p_reset = sub.add_parser("key-reset", help="Irrecoverably delete the vault master key")
    p_reset.add_argument("--yes", action="store_true", help="Confirm the reset")
    p_reset.set_defaults(func=cmd_key_reset)

    p_create = sub.add_parser("create", help="Create a payment request with an encrypted invoice")
    p_create.add_argument("creator", help="Merchant wallet address receiving the payment")
    p_create.add_argument("--amount", type=float, required=True, help="Amount in SOL")
    p_create.add_argument("--label", help="Public label shown to the payer")
    p_create.add_argument("--icon", help="Public icon URL")
    p_create.add_argument("--title", help="Private invoice title")
    p_create.add_argument("--item", action="append", type=_parse_item, help="Private line item DESCRIPTION=AMOUNT")
    p_create.add_argument("--notes", help="Private notes")
    p_create.add_argument("--expires-in-hours", type=float, help="Override the default 24h expiry")
    p_create.set_defaults(func=cmd_create)

    p_list = sub.add_parser("list", help="List requests, newest first")
    p_list.add_argument("--creator", help="Only requests created by this wallet")
    p_list.set_defaults(func=cmd_list)

    p_show = sub.add_parser("show", help="Show the public payment-link view of a request")
    p_show.add_argument("id")
    p_show.set_defaults(func=cmd_show)

    p_unlock = sub.add_parser("unlock", help="Decrypt the private invoice of a request")
    p_unlock.add_argument("id")
    p_unlock.set_defaults(func=cmd_unlock)

    p_cancel = sub.add_parser("cancel", help="Cancel a request")
    p_cancel.add_argument("id")
    p_cancel.set_defaults(func=cmd_cancel)

    p_paid = sub.add_parser("mark-paid", help="Record a payment verified manually on the ledger")
    p_paid.add_argument("id")
    p_paid.add_argument("signature", help="Transaction signature")
    p_paid.add_argument("payer", help="Payer wallet address")
    p_paid.set_defaults(func=cmd_mark_paid)

    p_stats = sub.add_parser("stats", help="Dashboard statistics for a merchant wallet")
    p_stats.add_argument("creator")
    p_stats.set_defaults(func=cmd_stats)

    p_receipt = sub.add_parser("receipt", help="Export a receipt with its decrypted invoice")
    p_receipt.add_argument("id")
    p_receipt.add_argument("output", help="Path to write the receipt JSON")
    p_receipt.set_defaults(func=cmd_receipt)

    p_profile = sub.add_parser("profile", help="Show (or create) the profile of a wallet")
    p_profile.add_argument("pubkey")
    p_profile.set_defaults(func=cmd_profile)

    p_serve = sub.add_parser("serve", help="Serve payment links and the dashboard API on this machine")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else config.LOG_LEVEL)
    try:
        args.func(args)
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
