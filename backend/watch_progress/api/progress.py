from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from watch_progress.api.ws import publish_progress
from watch_progress.db.session import get_db
from watch_progress.schemas.progress import (
    ProgressRecord,
    ProgressResetResult,
    ProgressSummary,
    ProgressUpdateEvent,
    ProgressUpdateIn,
)
from watch_progress.services import progress_store

router = APIRouter(prefix='/progress', tags=['progress'])


@router.get('', response_model=ProgressSummary)
async def list_progress(user_id: str = Header(..., alias='user-id'), db: Session = Depends(get_db)):
    """All progress records of a user plus a completion summary."""
    records = progress_store.list_records(db, user_id)
    return progress_store.summarize(user_id, records)


@router.get('/{video_id}', response_model=ProgressRecord)
async def get_progress(video_id: str, user_id: str = Header(..., alias='user-id'), db: Session = Depends(get_db)):
    record = progress_store.get_record(db, user_id, video_id)
    if record is None:
        raise HTTPException(status_code=404, detail='no progress recorded')
    return record


@router.post('/{video_id}', response_model=ProgressRecord)
async def update_progress(
    video_id: str,
    body: ProgressUpdateIn,
    user_id: str = Header(..., alias='user-id'),
    db: Session = Depends(get_db),
):
    """Merge a watched interval into the stored record and notify other viewers."""
    record = progress_store.apply_update(
        db,
        user_id,
        video_id,
        body.interval,
        body.last_position,
        is_completed=body.is_completed,
        duration=body.duration,
    )
    await publish_progress(ProgressUpdateEvent(
        video_id=video_id,
        user_id=user_id,
        progress=record.model_dump(mode='json', by_alias=True),
    ))
    return record


@router.delete('/{video_id}', response_model=ProgressResetResult)
async def reset_progress(
    video_id: str,
    force: bool = False,
    user_id: str = Header(..., alias='user-id'),
    db: Session = Depends(get_db),
):
    cleared = progress_store.clear_record(db, user_id, video_id, force=force)
    return ProgressResetResult(video_id=video_id, cleared=cleared)
