from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/ping", tags=["ping"])


@router.get("")
async def ping():
    return {"ok": True, "message": "pong"}


@router.post("")
async def echo(request: Request):
    try:
        body = await request.json()
    except ValueError:
        body = {}
    return {"received": body}
