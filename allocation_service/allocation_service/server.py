"""FastAPI entry point for the Allocation Service."""

import threading
from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

from confluent_kafka.admin import AdminClient
from fastapi import Body, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .config import get_config
from .consumer import SnapshotConsumer, create_consumer
from .exceptions import ItemUnavailableError, OrderRejectedError, SnapshotFetchError, SnapshotSuperseded
from .ingest import parse_payload
from .links import decode_webhook, order_link
from .logger import setup_service_logger
from .producer import AllocationProducer
from .schemas import (
    AllocationResult,
    DashboardSummary,
    Item,
    OrderGroup,
    OrderRequest,
    PlacementOutcome,
    StockLevel,
    WaitlistConfig,
    normalize_mnemonic,
)
from .service import HubState
from .store import JsonFileStore, MemoryStore

config = get_config()
logger = setup_service_logger(config.service_name, log_level=config.log_level, log_file=config.log_file)


def build_state() -> HubState:
    """Wire a HubState from the service configuration."""
    state = HubState(
        store=JsonFileStore(config.store_path) if config.store_path else MemoryStore(),
        producer=AllocationProducer(config.kafka_bootstrap_servers) if config.kafka_enabled else None,
        waitlist=WaitlistConfig(max_size=config.waitlist_max_size),
        low_stock_threshold=config.low_stock_threshold,
    )
    state.set_webhook(config.webhook_url, timeout=config.sync_timeout)
    return state


state = build_state()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    state.load()
    snapshot_consumer = None
    if config.kafka_enabled:
        snapshot_consumer = SnapshotConsumer(create_consumer(config.kafka_bootstrap_servers), state.apply_snapshot)
        threading.Thread(target=snapshot_consumer.run, daemon=True).start()
        logger.info("Snapshot consumer started")
    if state.fetcher is not None:
        try:
            state.refresh()
        except (SnapshotFetchError, SnapshotSuperseded) as e:
            logger.warning(f"Initial sync failed, serving last known snapshot: {e}")
    yield
    # Shutdown
    if snapshot_consumer is not None:
        snapshot_consumer.stop()
    if state.producer is not None:
        state.producer.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Allocation Service", lifespan=lifespan)


class WebhookUpdate(BaseModel):
    url: Optional[str] = None
    w: Optional[str] = Field(None, description="Base64 webhook parameter copied from a buyer order link")


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/ready")
async def readiness_check():
    """Readiness check; verifies Kafka only when it is configured."""
    if not config.kafka_enabled:
        return {"status": "ready", "kafka": "disabled"}
    try:
        admin = AdminClient({"bootstrap.servers": config.kafka_bootstrap_servers})
        cluster_metadata = admin.list_topics(timeout=10)
        if cluster_metadata is not None:
            return {"status": "ready", "kafka": "connected"}
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
    return {"status": "not ready", "kafka": "disconnected"}


@app.get("/items", response_model=list[Item])
async def list_items():
    """Items in display order."""
    return state.ledger.items()


@app.get("/items/{mnemonic}", response_model=Item)
async def get_item(mnemonic: str):
    """Look up an item case-insensitively."""
    item = state.item(mnemonic)
    if item is None:
        raise HTTPException(status_code=404, detail="Item unavailable")
    return item


@app.delete("/items/{item_id}", response_model=Item)
def delete_item(item_id: str):
    """Remove one item; existing orders for it are kept."""
    try:
        return state.remove_item(item_id)
    except ItemUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/inventory", response_model=AllocationResult)
def replace_inventory(items: list[Item]):
    """Replace the seller's item set and re-run allocation."""
    return state.set_inventory(items)


@app.post("/snapshot", response_model=AllocationResult)
def apply_snapshot(payload: Any = Body(...)):
    """Apply a raw snapshot document delivered by the sync transport."""
    return state.apply_snapshot(parse_payload(payload))


@app.post("/sync", response_model=AllocationResult)
def sync_now():
    """Fetch the latest snapshot from the configured webhook."""
    try:
        return state.refresh()
    except SnapshotSuperseded as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SnapshotFetchError as e:
        raise HTTPException(status_code=502, detail=f"Sync failed, showing last known data: {e}")


@app.get("/sync")
async def sync_status():
    return {
        "webhook": state.fetcher.url if state.fetcher else None,
        "last_sync": state.last_sync.isoformat() if state.last_sync else None,
    }


@app.put("/sync/webhook")
async def set_webhook(update: WebhookUpdate):
    """Set or clear the sync webhook, either directly or from an order link's ``w`` parameter."""
    url = update.url
    if update.w is not None:
        url = decode_webhook(update.w)
        if url is None:
            raise HTTPException(status_code=422, detail="Invalid webhook parameter")
    state.set_webhook(url, timeout=config.sync_timeout)
    return {"webhook": url}


@app.get("/allocation", response_model=AllocationResult)
async def get_allocation():
    return state.allocation()


@app.get("/orders", response_model=list[OrderGroup])
async def list_orders(status_filter: Literal["all", "waitlisted"] = Query("all", alias="filter")):
    """Grouped orders, most recent first."""
    return state.groups(waitlisted_only=status_filter == "waitlisted")


@app.post("/orders", response_model=PlacementOutcome)
def create_order(order: OrderRequest):
    """Place a buyer checkout."""
    logger.info(f"Received new order from {order.buyer_name} | lines={len(order.lines)}")
    try:
        return state.place_order(order)
    except ItemUnavailableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderRejectedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/stock", response_model=list[StockLevel])
async def get_stock():
    return state.stock()


@app.get("/summary", response_model=DashboardSummary)
async def get_summary():
    return state.summary()


@app.get("/upsell/{mnemonic}", response_model=list[Item])
async def get_upsell(mnemonic: str):
    """Cross-sell candidates for the buyer page of ``mnemonic``."""
    return state.upsell(mnemonic)


@app.get("/waitlist", response_model=WaitlistConfig)
async def get_waitlist():
    return state.waitlist


@app.put("/waitlist", response_model=WaitlistConfig)
def put_waitlist(waitlist: WaitlistConfig):
    return state.set_waitlist(waitlist)


@app.get("/links/{mnemonic}")
async def get_order_link(mnemonic: str):
    """Buyer link to encode in the item's scannable code."""
    if state.item(mnemonic) is None:
        raise HTTPException(status_code=404, detail="Item unavailable")
    webhook = state.fetcher.url if state.fetcher else None
    return {"mnemonic": normalize_mnemonic(mnemonic), "url": order_link(config.public_base_url, mnemonic, webhook)}


@app.delete("/cache")
def clear_cache():
    """Forget local items and orders; the webhook stays configured."""
    state.reset()
    return {"status": "cleared"}
