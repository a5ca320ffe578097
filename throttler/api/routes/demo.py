"""Sample endpoints protected by the throttle middleware.

They carry no business logic; they exist so a deployment (and the test
suite) can observe quota headers and rejections end to end.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/center", tags=["Demo"])


@router.get("/{api_name}")
def read_demo(api_name: str) -> dict:
    return {"status": 1, "api": api_name}


@router.post("/{api_name}")
async def write_demo(api_name: str, request: Request) -> dict:
    body = await request.body()
    return {"status": 1, "api": api_name, "received_bytes": len(body)}
