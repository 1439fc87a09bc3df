from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import MatchNotFound
from ..models import MatchRecord
from ..rate_limit import MATCH_SUBMIT_RATE_LIMIT, limiter
from ..schemas import MatchIdOut, MatchRecordIn, MatchRecordOut, MatchSummaryPageOut
from ..services.recorder import store_match_record, to_record_out, to_summary

# Resource-only prefix; versioning is added in main.py
router = APIRouter(prefix="/matches", tags=["matches"])


# GET /api/v0/matches
@router.get("", response_model=MatchSummaryPageOut)
async def list_matches(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    stmt = (
        select(MatchRecord)
        .order_by(MatchRecord.played_at.desc(), MatchRecord.created_at.desc())
        .offset(offset)
        .limit(limit + 1)
    )
    result = (await session.execute(stmt)).scalars().all()

    has_more = len(result) > limit
    rows = result[:limit]
    return MatchSummaryPageOut(
        items=[to_summary(row) for row in rows],
        limit=limit,
        offset=offset,
        hasMore=has_more,
        nextOffset=offset + limit if has_more else None,
    )


# POST /api/v0/matches
@router.post("", response_model=MatchIdOut)
@limiter.limit(MATCH_SUBMIT_RATE_LIMIT)
async def create_match(
    request: Request,
    body: MatchRecordIn,
    session: AsyncSession = Depends(get_session),
) -> MatchIdOut:
    mid = await store_match_record(session, body)
    return MatchIdOut(id=mid)


# GET /api/v0/matches/{mid}
@router.get("/{mid}", response_model=MatchRecordOut)
async def get_match(mid: str, session: AsyncSession = Depends(get_session)):
    row = (
        await session.execute(select(MatchRecord).where(MatchRecord.id == mid))
    ).scalar_one_or_none()
    if not row:
        raise MatchNotFound(mid)
    return to_record_out(row)
