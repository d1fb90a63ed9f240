from fastapi import APIRouter, Query, Request

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/summary")
async def analytics_summary(request: Request, days: int = Query(7, ge=1, le=90)):
    """
    Process-wide usage aggregates for the dashboard (unauthenticated).

    Returns totals for today / 7 / 30 days, a daily histogram over the last
    `days` days, average processing time and the 24h new vs. returning split.
    No per-identity data is included.
    """
    usage = request.app.state.usage
    return {"success": True, "data": await usage.summary(histogram_days=days)}
