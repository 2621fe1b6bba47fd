# vaultrelay/api/health.py

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from vaultrelay.api.dependencies import get_relay
from vaultrelay.services.relay_service import RelayService

router = APIRouter()


@router.get("/health")
def health_check(request: Request, relay: RelayService = Depends(get_relay)):
    database_ok = request.app.state.database.test_connection()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": "ok" if database_ok else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        **relay.health(),
    }
