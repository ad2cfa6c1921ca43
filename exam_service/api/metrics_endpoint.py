"""Prometheus metrics endpoint.

Scraped by Prometheus; returns the text exposition format, not JSON:

  # TYPE exam_attempts_graded_total counter
  exam_attempts_graded_total{passed="true"} 412.0
  exam_attempts_graded_total{passed="false"} 97.0

Restrict access to this path at the gateway: the counters reveal exam
volume and pass rates.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
