from __future__ import annotations

import logging
from typing import Any

import httpx

from watch_progress.schemas.progress import ProgressRecord, ProgressResetResult, ProgressUpdateIn
from watch_progress.services.http_client import HTTPClient
from watch_progress.services.intervals import Interval

_log = logging.getLogger(__name__)

USER_HEADER = 'user-id'


class ProgressAPIClient(HTTPClient):
    """Client for the REST progress store (``/progress/{video_id}``)."""

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> ProgressAPIClient:
        return cls(settings.remote_url, timeout=settings.remote_timeout, **kwargs)

    async def get_progress(self, video_id: str, user_id: str) -> ProgressRecord | None:
        """Fetch the stored record; 404 or an empty body means no prior progress."""
        response = await self.send('GET', f'/progress/{video_id}', headers={USER_HEADER: user_id})
        if response.status_code == 404 or not response.content:
            _log.debug('no stored progress video=%s user=%s', video_id, user_id)
            return None
        response.raise_for_status()
        payload = response.json()
        if not payload:
            return None
        return ProgressRecord.model_validate(payload)

    async def update_progress(
        self,
        video_id: str,
        user_id: str,
        interval: Interval,
        last_position: float,
        *,
        is_completed: bool = False,
        duration: float | None = None,
    ) -> ProgressRecord:
        body = ProgressUpdateIn(
            interval=interval,
            last_position=last_position,
            is_completed=is_completed,
            duration=duration,
        )
        return await self.fetch(
            'POST',
            f'/progress/{video_id}',
            ProgressRecord,
            json=body.model_dump(mode='json', by_alias=True, exclude_none=True),
            headers={USER_HEADER: user_id},
        )

    async def reset_progress(self, video_id: str, user_id: str, force: bool = False) -> bool:
        params = {'force': 'true'} if force else None
        try:
            result = await self.fetch(
                'DELETE',
                f'/progress/{video_id}',
                ProgressResetResult,
                params=params,
                headers={USER_HEADER: user_id},
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return False
            raise
        return result.cleared
