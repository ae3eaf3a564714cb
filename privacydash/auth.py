import logging
from datetime import datetime
from typing import Optional

from solders.pubkey import Pubkey

from . import config
from .crypto import verify_wallet_signature
from .errors import AuthenticationFailed, UserRejected
from .schemas import UserProfile, utcnow
from .store import ProfileStore

logger = logging.getLogger(__name__)


def build_login_message(pubkey: str, domain: str, issued_at: datetime) -> str:
    """Human-readable sign-in text; signing it costs nothing and moves no funds."""
    return (
        "Welcome to Privacy Dash\n\n"
        "This request is to verify your identity and unlock your private dashboard. "
        "No transaction or fees are involved.\n\n"
        f"Account: {pubkey}\n"
        f"Domain: {domain}\n"
        f"Issued At: {issued_at.isoformat()}"
    )


async def authenticate(
    wallet,
    profiles: ProfileStore,
    domain: str = config.DOMAIN,
    now: Optional[datetime] = None,
) -> UserProfile:
    """Prove control of the connected wallet, then load or create its profile."""
    address = wallet.get_address()
    message = build_login_message(address, domain, now or utcnow()).encode("utf-8")
    try:
        signature = await wallet.sign_message(message)
    except UserRejected as exc:
        raise AuthenticationFailed("Sign-in was declined in the wallet") from exc
    try:
        public_key = bytes(Pubkey.from_string(address))
    except ValueError as exc:
        raise AuthenticationFailed(f"Wallet address {address} is not a valid public key") from exc
    if not verify_wallet_signature(public_key, message, bytes(signature)):
        raise AuthenticationFailed("Wallet signature does not match the sign-in message")
    logger.info("Wallet %s signed in", address)
    return profiles.get_or_create(address)
