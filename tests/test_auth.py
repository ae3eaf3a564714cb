import sys
from pathlib import Path
import asyncio
from datetime import datetime, timezone

import pytest
from solders.keypair import Keypair

# Ensure project root on sys.path for direct execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from privacydash import auth  # noqa: E402
from privacydash.errors import AuthenticationFailed, UserRejected  # noqa: E402
from privacydash.slots import MemorySlotStore  # noqa: E402
from privacydash.store import ProfileStore  # noqa: E402

ISSUED = datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc)


class SigningWallet:
    def __init__(self, keypair=None, signer=None, reject=False):
        self.keypair = keypair or Keypair()
        self.signer = signer or self.keypair
        self.reject = reject
        self.messages = []

    def get_address(self):
        return str(self.keypair.pubkey())

    async def sign_message(self, message):
        if self.reject:
            raise UserRejected("User rejected the request")
        self.messages.append(message)
        return bytes(self.signer.sign_message(message))


def test_login_message_names_account_and_domain():
    message = auth.build_login_message("ABC", "dash.example", ISSUED)
    assert message.startswith("Welcome to Privacy Dash")
    assert "Account: ABC" in message
    assert "Domain: dash.example" in message
    assert "Issued At: 2024-05-17T09:30:00+00:00" in message


def test_authenticate_creates_profile_once():
    profiles = ProfileStore(MemorySlotStore())
    wallet = SigningWallet()
    profile = asyncio.run(auth.authenticate(wallet, profiles, domain="dash.example", now=ISSUED))
    assert profile.pubkey == wallet.get_address()
    assert b"Domain: dash.example" in wallet.messages[0]
    again = asyncio.run(auth.authenticate(wallet, profiles, domain="dash.example"))
    assert again == profile


def test_declined_signature_fails_authentication():
    profiles = ProfileStore(MemorySlotStore())
    wallet = SigningWallet(reject=True)
    with pytest.raises(AuthenticationFailed):
        asyncio.run(auth.authenticate(wallet, profiles))
    assert profiles.get(wallet.get_address()) is None


def test_signature_from_other_key_fails_authentication():
    profiles = ProfileStore(MemorySlotStore())
    wallet = SigningWallet(signer=Keypair())
    with pytest.raises(AuthenticationFailed):
        asyncio.run(auth.authenticate(wallet, profiles))
    assert profiles.get(wallet.get_address()) is None


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
