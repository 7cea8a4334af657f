from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from mediathek import __version__
from mediathek.dependencies import Services, get_services
from mediathek.exceptions import NotFoundError
from mediathek.schemas import (
    ErrorDetail,
    PlaybackUrlResponse,
    ShowPage,
    ShowResponse,
    ShowRow,
    SyncEventResponse,
    SyncStatusResponse,
)
from mediathek.services.catalog_types import ANY, Filter, SortKey, SortOrder, UrlQuality, preferred_url
from mediathek.services.sync_state_service import CATALOG, MIRROR_LIST


logger = logging.getLogger(__name__)

main_router = APIRouter()

ServicesDep = Annotated[Services, Depends(get_services)]


@main_router.get("/")
async def root(services: ServicesDep) -> dict:
    """Root endpoint with service information"""
    next_run = services.scheduler.get_next_run_time()

    return {
        "service": "Mediathek Catalog",
        "version": __version__,
        "next_scheduled_check": next_run.isoformat() if next_run else None,
        "endpoints": {
            "sync": "/sync - Check mirror list and catalog now (POST)",
            "sync_catalog": "/sync/catalog - Force a catalog refresh (POST)",
            "shows": "/shows - Browse the catalog",
            "channels": "/channels - Known channels",
            "topics": "/topics - Known topics of a channel",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(services: ServicesDep) -> dict:
    """Health check endpoint"""
    next_run = services.scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": services.scheduler.is_running(),
        "next_check": next_run.isoformat() if next_run else None,
        "sync_phase": services.controller.phase.value,
        "shows": await services.store.count(),
    }


def _sync_result(result: dict) -> dict:
    if result["status"] == "failed":
        detail = ErrorDetail(
            code="SYNC_FAILED",
            message=result["error"],
            context={"stage": result.get("stage")},
        )
        raise HTTPException(status_code=502, detail=detail.model_dump())
    return result


@main_router.post("/sync")
async def trigger_sync(services: ServicesDep) -> dict:
    """
    Check mirror list and catalog and refresh whatever is due
    """
    logger.info("Manual sync check triggered via API")
    return _sync_result(await services.controller.run_cycle())


@main_router.post("/sync/catalog")
async def trigger_catalog_refresh(services: ServicesDep) -> dict:
    """
    Download, decode, parse and store the catalog now
    """
    logger.info("Manual catalog refresh triggered via API")
    return _sync_result(await services.controller.refresh_catalog())


@main_router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(services: ServicesDep) -> SyncStatusResponse:
    """Last reported event of each sync stage"""
    controller = services.controller

    def event_response(stage: str) -> SyncEventResponse | None:
        event = controller.last_events.get(stage)
        if event is None:
            return None
        return SyncEventResponse(
            stage=event.stage,
            kind=event.kind,
            reason=event.reason,
            updated_at=event.updated_at,
            shows=event.shows,
        )

    return SyncStatusResponse(
        phase=controller.phase.value,
        syncing=controller.is_syncing(),
        mirror_list=event_response(MIRROR_LIST),
        catalog=event_response(CATALOG),
    )


@main_router.get("/channels")
async def list_channels(services: ServicesDep) -> list[str]:
    """Known channels, led by the empty "any" entry"""
    return services.view.channels()


@main_router.get("/topics")
async def list_topics(services: ServicesDep, channel: str = ANY) -> list[str]:
    """Known topics of a channel (or of all channels), led by the empty "any" entry"""
    return await services.store.distinct_topics(channel)


@main_router.get("/shows", response_model=ShowPage)
async def list_shows(
    services: ServicesDep,
    channel: str = ANY,
    topic: str = ANY,
    title: str = "",
    sort: SortKey = SortKey.CHANNEL,
    order: SortOrder = SortOrder.ASCENDING,
    offset: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> ShowPage:
    """
    Browse the catalog through the shared index view

    The view fetches further pages until the requested window is covered.
    """
    view = services.view
    await view.set_filter_and_sort(Filter(channel=channel, topic=topic, title=title), sort, order)

    while view.row_count() < offset + limit and view.can_fetch_more():
        await view.fetch_more()

    rows = []
    for row in range(offset, min(offset + limit, view.row_count())):
        show = await view.show_at(row)
        if show is not None:
            rows.append(ShowRow.from_show(row, show))

    return ShowPage(
        offset=offset,
        limit=limit,
        fetched=view.row_count(),
        total=view.total_count(),
        rows=rows,
    )


@main_router.get("/shows/{show_id}", response_model=ShowResponse)
async def get_show(show_id: int, services: ServicesDep) -> ShowResponse:
    """Full record of one show"""
    try:
        show = await services.store.fetch(show_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ShowResponse.from_show(show)


@main_router.get("/shows/{show_id}/url", response_model=PlaybackUrlResponse)
async def get_playback_url(
    show_id: int,
    services: ServicesDep,
    quality: UrlQuality = UrlQuality.DEFAULT,
) -> PlaybackUrlResponse:
    """Playback URL in the preferred quality, falling back to the others"""
    try:
        show = await services.store.fetch(show_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    url = preferred_url(show, quality)
    if not url:
        raise HTTPException(status_code=404, detail=f"Show {show_id} has no playback URL")
    return PlaybackUrlResponse(id=show_id, quality=quality.value, url=url)
