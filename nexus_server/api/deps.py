from contextlib import contextmanager
from typing import Optional

from fastapi import Header, HTTPException

from nexus_server.utils.errors import NotFoundError
from nexus_server.utils.logger import server_logger


def get_current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """The acting user; authentication happens in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


@contextmanager
def service_errors(action: str):
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        server_logger.error(f"API Error in {action}: {type(e).__name__}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to {action}")
