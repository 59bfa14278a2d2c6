"""benodoro Cloud API - single-record store for session state."""
import logging
from datetime import timezone
from typing import Optional

import aiohttp
from fastapi import FastAPI, Depends, HTTPException, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from database import engine, get_db, Base
from models import Record, Subscription

logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="benodoro Cloud API",
    description="Per-account record store with change subscriptions",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ Pydantic Models ============

class RecordSave(BaseModel):
    recordType: str
    fields: dict


class SubscriptionSave(BaseModel):
    subscriptionId: str
    recordType: str
    callbackUrl: str
    firesOn: list[str] = Field(default_factory=lambda: ["create", "update"])


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _record_dict(record: Record) -> dict:
    return {
        "recordName": record.record_name,
        "recordType": record.record_type,
        "fields": record.fields or {},
        "modifiedAt": _iso(record.modified_at),
        "changeTag": str(record.change_tag),
    }


async def notify_subscribers(callbacks: list[str], payload: dict) -> None:
    """POST a change notification to each callback. Failures are logged only."""
    timeout = aiohttp.ClientTimeout(total=5)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        for url in callbacks:
            try:
                async with session.post(url, json=payload) as resp:
                    if resp.status != 200:
                        logger.warning(f"Subscriber {url} returned {resp.status}")
            except Exception as e:
                logger.error(f"Failed to notify subscriber {url}: {e}")


# ============ Health & Info ============

@app.get("/")
def root():
    return {
        "service": "benodoro Cloud API",
        "version": "0.1.0",
        "status": "healthy",
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# ============ Records ============

@app.get("/api/containers/{container_id}/records/{record_name}")
def fetch_record(container_id: str, record_name: str, db: Session = Depends(get_db)):
    """Fetch one record by name."""
    record = db.get(Record, (container_id, record_name))
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    return _record_dict(record)


@app.put("/api/containers/{container_id}/records/{record_name}")
def save_record(
    container_id: str,
    record_name: str,
    data: RecordSave,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Create or overwrite a record. No change tag check: the last save wins."""
    record = db.get(Record, (container_id, record_name))
    if record:
        reason = "update"
        record.record_type = data.recordType
        record.fields = data.fields
        record.change_tag = (record.change_tag or 0) + 1
    else:
        reason = "create"
        record = Record(
            container_id=container_id,
            record_name=record_name,
            record_type=data.recordType,
            fields=data.fields,
            change_tag=1,
        )
        db.add(record)
    db.commit()
    db.refresh(record)

    callbacks = [
        sub.callback_url
        for sub in db.query(Subscription).filter(
            Subscription.container_id == container_id,
            Subscription.record_type == data.recordType,
        )
        if reason in (sub.fires_on or [])
    ]
    if callbacks:
        background_tasks.add_task(
            notify_subscribers,
            callbacks,
            {"containerId": container_id, "recordName": record_name, "reason": reason},
        )

    return _record_dict(record)


# ============ Subscriptions ============

@app.post("/api/containers/{container_id}/subscriptions")
def save_subscription(container_id: str, data: SubscriptionSave, db: Session = Depends(get_db)):
    """Register or replace a change subscription."""
    subscription = db.get(Subscription, (container_id, data.subscriptionId))
    if subscription:
        subscription.record_type = data.recordType
        subscription.callback_url = data.callbackUrl
        subscription.fires_on = data.firesOn
    else:
        subscription = Subscription(
            container_id=container_id,
            subscription_id=data.subscriptionId,
            record_type=data.recordType,
            callback_url=data.callbackUrl,
            fires_on=data.firesOn,
        )
        db.add(subscription)
    db.commit()
    return {"status": "subscribed", "subscriptionId": data.subscriptionId}


@app.get("/api/containers/{container_id}/subscriptions")
def list_subscriptions(container_id: str, db: Session = Depends(get_db)):
    """List subscriptions in a container."""
    subscriptions = db.query(Subscription).filter(Subscription.container_id == container_id).all()
    return [
        {
            "subscriptionId": sub.subscription_id,
            "recordType": sub.record_type,
            "callbackUrl": sub.callback_url,
            "firesOn": sub.fires_on or [],
        }
        for sub in subscriptions
    ]


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
