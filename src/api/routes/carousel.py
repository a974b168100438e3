"""Public carousel feed.

The home page shows published articles and projects in an infinite carousel.
This route lays the published rows out on the loop track for the requesting
viewport, so the client only has to translate the track and report
transition ends to its local engine.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_carousel_config, get_table_store
from src.api.errors import backend_call
from src.api.routes.public import PUBLIC_VIEWS
from src.api.schemas import CarouselFeedResponse, CarouselSlotResponse, ErrorResponse
from src.core.carousel_logic import CarouselConfig, CarouselState, per_view_for_width
from src.core.logging import get_logger
from src.ports.backend import Record, TableStore

logger = get_logger(__name__)

router = APIRouter(prefix="/carousel", tags=["carousel"])

MAX_FEED_ITEMS = 24


@router.get(
    "/{table}",
    response_model=CarouselFeedResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown feed"}},
)
async def carousel_feed(
    table: str,
    store: Annotated[TableStore, Depends(get_table_store)],
    config: Annotated[CarouselConfig, Depends(get_carousel_config)],
    width: Annotated[float | None, Query(ge=0, description="Viewport width in px")] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_FEED_ITEMS)] = 12,
) -> CarouselFeedResponse:
    """Loop track of published rows for one viewport width.

    An empty feed returns an empty track; clients render nothing for it.
    """
    view = PUBLIC_VIEWS.get(table)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": f"No carousel feed for '{table}'", "code": "NOT_FOUND"},
        )

    with backend_call("select"):
        rows: list[Record] = await store.select(
            table,
            filters=view.filters,
            exclude=view.exclude,
            order_by=view.order,
            limit=limit,
        )

    per_view = per_view_for_width(width, config.breakpoints)
    state = CarouselState.build(rows, per_view)

    logger.debug(
        "carousel_feed_built",
        table=table,
        items=len(rows),
        per_view=per_view,
        track_length=len(state.track),
    )

    return CarouselFeedResponse(
        table=table,
        per_view=per_view,
        item_count=len(rows),
        safe_length=state.total,
        start_index=state.index,
        offset_percent=state.offset_percent,
        autoplay=config.autoplay,
        autoplay_interval_ms=config.autoplay_interval_ms,
        transition_ms=config.transition_ms,
        show_arrows=config.show_arrows and state.can_navigate,
        touch_threshold=config.touch_threshold,
        drag_threshold=config.drag_threshold,
        track=[
            CarouselSlotResponse(
                slot=slot,
                id=str(row["id"]),
                slug=row.get("slug"),
                titulo=row.get("titulo"),
                capa_url=row.get("capa_url"),
            )
            for slot, row in enumerate(state.track)
        ],
    )
