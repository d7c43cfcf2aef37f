import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from school_core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

Base = declarative_base()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_session_factory(settings: Settings) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create the async engine and a session factory bound to it."""
    engine = create_async_engine(settings.database_url, echo=settings.database_echo, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    return engine, session_factory


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Response envelopes ---
def success_response(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """
    Standard success envelope for all API endpoints.
    ``data`` is omitted when there is nothing to return.
    """
    response = {"success": True, "message": message}
    if data is not None:
        response["data"] = data
    return response


def paginated_response(
    data: List[Any],
    page: int,
    limit: int,
    total: int,
    message: str = "Success",
) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "success": True,
        "message": message,
        "data": data,
        "pagination": {
            "currentPage": page,
            "pageSize": limit,
            "totalItems": total,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPreviousPage": page > 1,
        },
    }


class ErrorResponse(JSONResponse):
    """
    Standard error envelope: ``{success: false, message, errors?}``.
    """
    def __init__(self, message: str, status_code: int = 500, errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        content = {"success": False, "message": message}
        if errors:
            content["errors"] = errors
        super().__init__(content=content, status_code=status_code, **kwargs)


class BaseService:
    """
    Shared helpers for the services mounted in the app:
    - Structured event/error logging
    - Response envelopes
    """
    def __init__(self, service_name: str = "school_core"):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        log_data = {
            "timestamp": utcnow().isoformat(),
            "service": self.service_name,
            "event": event,
            "data": details or {},
        }
        self.logger.info(f"EVENT: {json.dumps(log_data, default=str)}")
        return log_data

    def log_error(self, error: Exception, context: str = "") -> Dict[str, Any]:
        error_data = {
            "timestamp": utcnow().isoformat(),
            "service": self.service_name,
            "error": str(error),
            "error_type": error.__class__.__name__,
            "context": context or "unknown",
        }
        self.logger.error(f"ERROR: {json.dumps(error_data, default=str)}")
        return error_data

    def response(self, data: Any = None, message: str = "Success") -> Dict[str, Any]:
        return success_response(data=data, message=message)
