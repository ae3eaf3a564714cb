import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from privacydash import config, library
from privacydash.errors import StorageError
from privacydash.schemas import Stats
from privacydash.slots import SlotStore, SqlSlotStore
from privacydash.store import RequestStore

logger = logging.getLogger(__name__)

_slots: Optional[SlotStore] = None


def get_slots() -> SlotStore:
    global _slots
    if _slots is None:
        _slots = SqlSlotStore(config.DB_URL)
    return _slots


def configure(slots: SlotStore) -> None:
    global _slots
    _slots = slots


def get_request_store(slots: SlotStore = Depends(get_slots)) -> RequestStore:
    return RequestStore(slots)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=config.LOG_LEVEL)
    yield


# Served on the merchant's own machine next to the vault; nothing here leaves the client.
app = FastAPI(title="Privacy Dash", version="0.1", lifespan=lifespan)


class PublicRequestOut(BaseModel):
    id: str
    reference: str
    amount: float
    token_mint: str
    label: str
    icon: str
    status: str
    creator: str
    expires_at: datetime
    signature: Optional[str] = None


@app.exception_handler(StorageError)
async def storage_error_handler(request, exc: StorageError):
    logger.error("Vault storage failure: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Vault unavailable"})


@app.get("/pay/{request_id}", response_model=PublicRequestOut)
def get_payment_link(request_id: str, store: RequestStore = Depends(get_request_store)):
    view = library.open_payment_link(store, request_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return view


@app.get("/requests", response_model=List[PublicRequestOut])
def list_requests(creator: Optional[str] = None, store: RequestStore = Depends(get_request_store)):
    return [r.public_view() for r in store.list_all(creator)]


@app.get("/stats/{creator}", response_model=Stats)
def get_stats(creator: str, store: RequestStore = Depends(get_request_store)):
    return store.stats(creator)


@app.post("/requests/{request_id}/cancel", response_model=PublicRequestOut)
def cancel_request(request_id: str, store: RequestStore = Depends(get_request_store)):
    cancelled = store.cancel(request_id)
    if cancelled is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return cancelled.public_view()


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}
