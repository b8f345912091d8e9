"""
Observer パターン — HTTP エンドポイント (/api/observer)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from .news import EmailSubscriber, MobileApp, NewsAgency, NewsChannel, Observer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/observer", tags=["observer"])

NonBlank = Field(min_length=1, pattern=r"\S")


def get_agency(request: Request) -> NewsAgency:
    return request.app.state.news_agency


def get_registry(request: Request) -> dict[str, Observer]:
    return request.app.state.observer_registry


# ── Request Models ───────────────────────────────


class NewsRequest(BaseModel):
    news: str = NonBlank


class ChannelRequest(BaseModel):
    channel_name: str = NonBlank


class EmailRequest(BaseModel):
    name: str = NonBlank
    email: str = NonBlank


class MobileRequest(BaseModel):
    app_name: str = NonBlank
    device_id: str = NonBlank


class PushSettingRequest(BaseModel):
    enabled: bool


# ── Endpoints ────────────────────────────────────


@router.post("/news")
async def publish_news(
    req: NewsRequest,
    agency: NewsAgency = Depends(get_agency),
):
    agency.publish_news(req.news)
    return {
        "news": req.news,
        "subscriber_count": agency.observer_count,
        "subscribers": agency.observer_names,
    }


@router.post("/subscribe/channel")
async def subscribe_channel(
    req: ChannelRequest,
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    channel_name = req.channel_name.strip()
    return _subscribe(agency, registry, f"channel_{channel_name}", NewsChannel(channel_name))


@router.post("/subscribe/email")
async def subscribe_email(
    req: EmailRequest,
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    email = req.email.strip()
    return _subscribe(agency, registry, f"email_{email}", EmailSubscriber(req.name.strip(), email))


@router.post("/subscribe/mobile")
async def subscribe_mobile(
    req: MobileRequest,
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    device_id = req.device_id.strip()
    return _subscribe(agency, registry, f"mobile_{device_id}", MobileApp(req.app_name.strip(), device_id))


@router.delete("/unsubscribe/{observer_id}")
async def unsubscribe(
    observer_id: str,
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    observer = registry.pop(observer_id, None)
    if observer is None:
        raise HTTPException(404, "Subscriber not found")
    agency.remove_observer(observer)
    return {"observer_name": observer.name, "total_subscribers": agency.observer_count}


@router.get("/subscribers")
async def list_subscribers(agency: NewsAgency = Depends(get_agency)):
    return {
        "total_count": agency.observer_count,
        "subscribers": agency.observer_names,
        "latest_news": agency.latest_news,
    }


@router.get("/subscriber/{observer_id}")
async def subscriber_detail(
    observer_id: str,
    registry: dict[str, Observer] = Depends(get_registry),
):
    observer = registry.get(observer_id)
    if observer is None:
        raise HTTPException(404, "Subscriber not found")

    detail = {
        "observer_id": observer_id,
        "name": observer.name,
        "type": type(observer).__name__,
    }
    if isinstance(observer, NewsChannel):
        detail.update(news_count=len(observer.news_history), latest_news=observer.latest_news)
    elif isinstance(observer, EmailSubscriber):
        detail.update(email_count=len(observer.email_history), email=observer.email)
    elif isinstance(observer, MobileApp):
        detail.update(
            notification_count=len(observer.notifications),
            device_id=observer.device_id,
            push_enabled=observer.push_enabled,
        )
    return detail


@router.put("/subscriber/{observer_id}/push")
async def set_push_enabled(
    observer_id: str,
    req: PushSettingRequest,
    registry: dict[str, Observer] = Depends(get_registry),
):
    observer = registry.get(observer_id)
    if not isinstance(observer, MobileApp):
        raise HTTPException(404, "Mobile subscriber not found")
    observer.push_enabled = req.enabled
    return {"observer_id": observer_id, "push_enabled": observer.push_enabled}


@router.post("/demo")
async def run_demo(
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    """チャンネル2つ・メール1件・アプリ1台を登録してニュースを1件発行する"""
    logger.info("Running observer pattern demo")
    demo = {
        "channel_KBS": NewsChannel("KBS News"),
        "channel_SBS": NewsChannel("SBS News"),
        "email_user@example.com": EmailSubscriber("Kim", "user@example.com"),
        "mobile_device123": MobileApp("NewsApp", "device123"),
    }
    for observer_id, observer in demo.items():
        _subscribe(agency, registry, observer_id, observer)

    agency.publish_news("Breaking: the observer pattern demo ran successfully!")
    return {
        "subscribers_added": len(demo),
        "news_published": 1,
        "subscribers": agency.observer_names,
    }


@router.delete("/reset")
async def reset(
    agency: NewsAgency = Depends(get_agency),
    registry: dict[str, Observer] = Depends(get_registry),
):
    for observer in registry.values():
        agency.remove_observer(observer)
    registry.clear()
    return {"total_subscribers": agency.observer_count}


def _subscribe(
    agency: NewsAgency,
    registry: dict[str, Observer],
    observer_id: str,
    observer: Observer,
) -> dict:
    # 同じ ID で再登録したら古い購読者を外す
    previous = registry.pop(observer_id, None)
    if previous is not None:
        agency.remove_observer(previous)

    agency.add_observer(observer)
    registry[observer_id] = observer
    return {
        "observer_id": observer_id,
        "name": observer.name,
        "total_subscribers": agency.observer_count,
    }
