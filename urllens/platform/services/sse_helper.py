"""
SSE (Server-Sent Events) helper for publishing audit progress via Redis pub/sub.

Celery workers call these functions after every completed probe; the SSE
endpoint subscribes to the same channel and streams the events to clients.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis

from urllens.platform.config import settings

logger = logging.getLogger(__name__)

# Redis client for pub/sub
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info(f"Initialized Redis client for SSE: {settings.REDIS_URL}")

    return _redis_client


def progress_channel(session_id: str) -> str:
    return f"{settings.PROGRESS_CHANNEL_PREFIX}:{session_id}"


def publish_audit_progress(session_id: str, progress: Dict[str, Any]) -> bool:
    """
    Publish an audit progress event to Redis for SSE streaming.

    Args:
        session_id: The audit session ID
        progress: Serialized AuditProgress (status, current_step, totals, percent)

    Returns:
        True if published successfully, False otherwise. Progress is advisory,
        so a Redis outage never fails the audit itself.
    """
    try:
        event_data = {
            "session_id": session_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **progress,
        }
        channel = progress_channel(session_id)
        get_redis_client().publish(channel, json.dumps(event_data))

        logger.debug(
            f"Published SSE event to {channel}: {progress.get('current_step')} "
            f"({progress.get('percent_complete')}%)"
        )
        return True

    except redis.RedisError as e:
        logger.error(f"Failed to publish SSE event for session {session_id}: {e}")
        return False


def publish_audit_error(session_id: str, error_message: str) -> bool:
    return publish_audit_progress(
        session_id,
        {
            "status": "failed",
            "current_step": "Audit failed",
            "percent_complete": 0,
            "error": error_message,
        },
    )


def publish_audit_completion(session_id: str, total_urls: int, average_score: int) -> bool:
    return publish_audit_progress(
        session_id,
        {
            "status": "completed",
            "current_step": f"Audit complete! Average score: {average_score}/100",
            "total_urls": total_urls,
            "completed_urls": total_urls,
            "percent_complete": 100,
        },
    )
