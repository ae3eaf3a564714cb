"""
Persisted payment requests and wallet profiles.

Both stores keep no in-memory cache: every call reads the slot, and every mutation
writes the whole collection back in one slot write. A failed write leaves the stored
collection untouched, and nothing else holds the modified copy.
"""

import json
import logging
import uuid
from datetime import timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from . import config, errors
from .schemas import (
    PaymentRequest,
    RequestDraft,
    RequestStatus,
    Stats,
    UserProfile,
    as_utc,
    default_expiry,
    utcnow,
)
from .slots import SlotStore

logger = logging.getLogger(__name__)


def _new_reference() -> str:
    return f"REF-{uuid.uuid4().hex[:8].upper()}"


class RequestStore:
    def __init__(self, slots: SlotStore, label: str = config.REQUESTS_SLOT, clock: Callable = utcnow):
        self.slots = slots
        self.label = label
        self.clock = clock

    def _load(self) -> List[PaymentRequest]:
        raw = self.slots.get(self.label)
        if raw is None:
            return []
        try:
            return [PaymentRequest.model_validate(item) for item in json.loads(raw)]
        except (TypeError, json.JSONDecodeError, ValidationError) as exc:
            raise errors.CorruptedStore(self.label) from exc

    def _save(self, requests: List[PaymentRequest]) -> None:
        self.slots.put(self.label, json.dumps([r.model_dump(mode="json") for r in requests]))

    def _update(self, request_id: str, change: Callable[[PaymentRequest], Optional[dict]]) -> Optional[PaymentRequest]:
        """Apply change to one record; change returns the fields to update, or None to skip the write."""
        requests = self._load()
        for idx, current in enumerate(requests):
            if current.id != request_id:
                continue
            fields = change(current)
            if fields is None:
                return current
            updated = PaymentRequest.model_validate({**current.model_dump(), **fields})
            requests[idx] = updated
            self._save(requests)
            return updated
        return None

    def create(self, payload: RequestDraft | dict, creator: str) -> PaymentRequest:
        if not creator:
            raise ValueError("creator is required")
        draft = payload if isinstance(payload, RequestDraft) else RequestDraft.model_validate(payload)
        requests = self._load()
        taken = {r.id for r in requests}
        request_id = uuid.uuid4().hex
        while request_id in taken:
            request_id = uuid.uuid4().hex

        now = self.clock()
        request = PaymentRequest(
            id=request_id,
            reference=_new_reference(),
            amount=draft.amount,
            token_mint=draft.token_mint or config.DEFAULT_TOKEN_MINT,
            label=draft.label or config.DEFAULT_LABEL,
            icon=draft.icon or config.DEFAULT_ICON,
            ciphertext=draft.ciphertext,
            status=RequestStatus.PENDING,
            creator=creator,
            created_at=now,
            expires_at=draft.expires_at or default_expiry(now),
        )
        requests.append(request)
        self._save(requests)
        logger.info("Created request %s for %s (%s %s)", request.id, creator, request.amount, request.token_mint)
        return request

    def get(self, request_id: str) -> Optional[PaymentRequest]:
        return next((r for r in self._load() if r.id == request_id), None)

    def list_all(self, creator: Optional[str] = None) -> List[PaymentRequest]:
        """Newest first, optionally limited to one creator."""
        requests = self._load()
        if creator is not None:
            requests = [r for r in requests if r.creator == creator]
        return list(reversed(requests))

    def mark_paid(self, request_id: str, signature: str, payer: str) -> Optional[PaymentRequest]:
        def change(current: PaymentRequest):
            if current.status == RequestStatus.PAID:
                if current.signature == signature and current.payer == payer:
                    return None
                logger.warning(
                    "Request %s already paid with %s; overwriting with %s", current.id, current.signature, signature
                )
            return {"status": RequestStatus.PAID, "signature": signature, "payer": payer}

        updated = self._update(request_id, change)
        if updated is not None:
            logger.info("Request %s marked paid by %s", request_id, payer)
        return updated

    def cancel(self, request_id: str) -> Optional[PaymentRequest]:
        def change(current: PaymentRequest):
            if current.status == RequestStatus.CANCELLED:
                return None
            if current.status == RequestStatus.PAID:
                logger.warning("Cancelling paid request %s (signature %s)", current.id, current.signature)
            return {"status": RequestStatus.CANCELLED, "signature": None, "payer": None}

        updated = self._update(request_id, change)
        if updated is not None:
            logger.info("Request %s cancelled", request_id)
        return updated

    def stats(self, creator: str, now=None) -> Stats:
        now = as_utc(now or self.clock()).astimezone(timezone.utc)
        soon = now + timedelta(seconds=config.EXPIRING_SOON_SECONDS)
        mine = [r for r in self._load() if r.creator == creator]
        paid = [r for r in mine if r.status == RequestStatus.PAID]
        pending = [r for r in mine if r.status == RequestStatus.PENDING]
        return Stats(
            total_collected=sum(r.amount for r in paid),
            pending_requests=len(pending),
            paid_today=sum(1 for r in paid if r.created_at.date() == now.date()),
            expiring_soon=sum(1 for r in pending if r.expires_at < soon),
        )


class ProfileStore:
    def __init__(self, slots: SlotStore, label: str = config.PROFILES_SLOT, clock: Callable = utcnow):
        self.slots = slots
        self.label = label
        self.clock = clock

    def _load(self) -> Dict[str, UserProfile]:
        raw = self.slots.get(self.label)
        if raw is None:
            return {}
        try:
            return {key: UserProfile.model_validate(value) for key, value in json.loads(raw).items()}
        except (AttributeError, TypeError, json.JSONDecodeError, ValidationError) as exc:
            raise errors.CorruptedStore(self.label) from exc

    def _save(self, profiles: Dict[str, UserProfile]) -> None:
        self.slots.put(self.label, json.dumps({k: p.model_dump(mode="json") for k, p in profiles.items()}))

    def get(self, pubkey: str) -> Optional[UserProfile]:
        return self._load().get(pubkey)

    def get_or_create(self, pubkey: str) -> UserProfile:
        profiles = self._load()
        if pubkey in profiles:
            return profiles[pubkey]
        profile = UserProfile(pubkey=pubkey, last_login_at=self.clock(), balance=config.DEFAULT_BALANCE)
        profiles[pubkey] = profile
        self._save(profiles)
        logger.info("Created profile for %s", pubkey)
        return profile

    def save(self, profile: UserProfile) -> UserProfile:
        """Replace the stored record for this wallet (no field merging)."""
        profiles = self._load()
        profiles[profile.pubkey] = profile
        self._save(profiles)
        return profile
