from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import select, func

from watch_progress.core.config import settings
from watch_progress.db.session import SessionLocal
from watch_progress.models.progress import VideoProgress

router = APIRouter()


def get_version_payload() -> Dict[str, Any]:
    record_count = None
    try:
        with SessionLocal() as db:
            record_count = db.execute(select(func.count(VideoProgress.id))).scalar_one()
    except Exception:
        record_count = None
    return {
        'version': settings.version,
        'database': settings.database_url.split(':', 1)[0],
        'progress_records': record_count,
    }


@router.get('/version')
async def version():
    return get_version_payload()
