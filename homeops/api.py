"""
homeops/api.py
─────────────────────────────────────────────────────────────────────────────
homeops — query and batch API

TWO USAGE MODES:
  1. Importable module (reporting jobs, later learning phases):
         from homeops.api import HomeOpsAPI
         api = HomeOpsAPI(db_path=Path("homeops.db"))
         activities = api.get_activities(conversation_id="-100123")

  2. FastAPI HTTP server:
         python -m homeops.api                   # default: port 8780
         uvicorn homeops.api:app --port 8780

ENDPOINTS:
  POST /batch                              — run a delivery batch through the pipeline
  GET  /activities                         — activity records, filter by conversation/sender/kind
  GET  /activities/{conversation_id}/{id}  — single activity record (404 if absent)
  GET  /messages                           — ledger rows, filter by conversation/sender
  GET  /counters/{conversation_id}/{day}   — reply count for one local day
  GET  /health                             — liveness + db existence

Persisted rows are read-only through this module. The only write path is
POST /batch, which goes through the pipeline and its idempotency gate.

SECURITY NOTES:
  - Binds to 127.0.0.1 by default; the authenticated webhook front door
    is a separate service and forwards into the delivery queue, not here
  - SQL queries use parameterized statements only
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import Body, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from homeops.models.record import Delivery
from homeops.store.activity_store import ActivityStore
from homeops.store.db import connect
from homeops.store.ledger import Ledger
from homeops.store.response_counter import ResponseCounter

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class HomeOpsAPI:
    """
    Pure-Python read API around homeops.db.
    No HTTP layer required — import and call directly.
    """

    def __init__(self, db_path: Union[str, Path] = Path("homeops.db")):
        self.db_path = Path(db_path)

    def _db_exists(self) -> bool:
        return self.db_path.exists()

    # ── QUERY: ACTIVITIES ─────────────────────────────────────────────────

    def get_activities(
        self,
        conversation_id: Optional[str] = None,
        sender_id:       Optional[int] = None,
        kind:            Optional[str] = None,
        limit:           int           = 50,
        offset:          int           = 0,
    ) -> List[Dict[str, Any]]:
        """
        Activity records, newest first.

        Args:
            kind:   "chore" or "recovery"
            limit:  max rows (default 50, max enforced: 500)
        """
        if not self._db_exists():
            return []
        conn = connect(self.db_path)
        try:
            rows = ActivityStore(conn).list_activities(
                conversation_id = conversation_id,
                sender_id       = sender_id,
                kind            = kind,
                limit           = min(int(limit), 500),
                offset          = offset,
            )
        finally:
            conn.close()
        return [asdict(r) for r in rows]

    def get_activity(self, conversation_id: str, activity_id: str) -> Optional[Dict[str, Any]]:
        """
        Return a single activity record.
        Returns None if not found.
        """
        if not self._db_exists():
            return None
        conn = connect(self.db_path)
        try:
            rec = ActivityStore(conn).get_activity(conversation_id, activity_id)
        finally:
            conn.close()
        return asdict(rec) if rec else None

    # ── QUERY: LEDGER ─────────────────────────────────────────────────────

    def get_messages(
        self,
        conversation_id: Optional[str] = None,
        sender_id:       Optional[int] = None,
        limit:           int           = 50,
        offset:          int           = 0,
    ) -> List[Dict[str, Any]]:
        """Ledger rows, newest first. The raw delivery body is not returned."""
        if not self._db_exists():
            return []
        conn = connect(self.db_path)
        try:
            rows = Ledger(conn).list_messages(
                conversation_id = conversation_id,
                sender_id       = sender_id,
                limit           = min(int(limit), 500),
                offset          = offset,
            )
        finally:
            conn.close()
        out = []
        for r in rows:
            d = asdict(r)
            d.pop("raw", None)
            out.append(d)
        return out

    # ── QUERY: COUNTERS ───────────────────────────────────────────────────

    def get_counter(self, conversation_id: str, day: str) -> Dict[str, Any]:
        """Reply count for one conversation and local day. count=0 if absent."""
        if not self._db_exists():
            return {"conversation_id": conversation_id, "calendar_day": day,
                    "count": 0, "last_response_at": None}
        conn = connect(self.db_path)
        try:
            rec = ResponseCounter(conn).get(conversation_id, day)
        finally:
            conn.close()
        if rec is None:
            return {"conversation_id": conversation_id, "calendar_day": day,
                    "count": 0, "last_response_at": None}
        return asdict(rec)


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class DeliveryIn(BaseModel):
    delivery_id: str
    body:        Union[str, Dict[str, Any]]


class BatchIn(BaseModel):
    records: List[DeliveryIn] = Field(default_factory=list)


def _build_app(
    db_path:          Union[str, Path]       = Path("homeops.db"),
    pipeline_factory: Optional[Callable]     = None,
) -> FastAPI:
    """
    Build the FastAPI application.
    pipeline_factory() must return an object with process_batch() and close();
    defaults to homeops.pipeline.build_pipeline over the loaded config.
    """
    _api = HomeOpsAPI(db_path=db_path)

    if pipeline_factory is None:
        def pipeline_factory():
            from homeops.config import load_config
            from homeops.pipeline import build_pipeline
            return build_pipeline(load_config(), db_path=_api.db_path)

    _app = FastAPI(
        title       = "homeops API",
        description = "Household activity ledger — query and batch intake",
        version     = API_VERSION,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.post("/batch", summary="Process a delivery batch")
    def post_batch(batch: BatchIn = Body(...)):
        """
        Runs every delivery through the pipeline. Returns the delivery ids
        the queue should redeliver (ledger failures only).
        """
        pipeline = pipeline_factory()
        try:
            report = pipeline.process_batch(
                Delivery(delivery_id=d.delivery_id, body=d.body) for d in batch.records
            )
        finally:
            pipeline.close()
        return {
            "batch_item_failures": [
                {"item_identifier": i} for i in report.batch_item_failures
            ],
            "processed": len(report.reports),
        }

    @_app.get("/activities", summary="List activity records")
    def get_activities(
        conversation_id: Optional[str] = Query(None),
        sender_id:       Optional[int] = Query(None),
        kind:            Optional[str] = Query(None, description="chore or recovery"),
        limit:           int           = Query(50, ge=1, le=500),
        offset:          int           = Query(0,  ge=0),
    ):
        try:
            data = _api.get_activities(
                conversation_id=conversation_id, sender_id=sender_id,
                kind=kind, limit=limit, offset=offset,
            )
        except Exception as exc:
            logger.error(f"Activities query failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(exc))
        return {"count": len(data), "activities": data}

    @_app.get("/activities/{conversation_id}/{activity_id}", summary="Get single activity record")
    def get_activity(conversation_id: str, activity_id: str):
        """Returns 404 if the activity is not in the DB."""
        try:
            data = _api.get_activity(conversation_id, activity_id)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        if data is None:
            raise HTTPException(status_code=404, detail=f"Activity not found: {activity_id}")
        return data

    @_app.get("/messages", summary="List ledger rows")
    def get_messages(
        conversation_id: Optional[str] = Query(None),
        sender_id:       Optional[int] = Query(None),
        limit:           int           = Query(50, ge=1, le=500),
        offset:          int           = Query(0,  ge=0),
    ):
        try:
            data = _api.get_messages(
                conversation_id=conversation_id, sender_id=sender_id,
                limit=limit, offset=offset,
            )
        except Exception as exc:
            logger.error(f"Messages query failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(exc))
        return {"count": len(data), "messages": data}

    @_app.get("/counters/{conversation_id}/{day}", summary="Reply count for a local day")
    def get_counter(conversation_id: str, day: str):
        try:
            return _api.get_counter(conversation_id, day)
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":    "ok",
            "db_exists": _api.db_path.exists(),
            "version":   API_VERSION,
        }

    return _app


# Module-level app instance — used by uvicorn homeops.api:app
app = _build_app()


if __name__ == "__main__":
    from homeops.cli import main
    main(["serve"])
