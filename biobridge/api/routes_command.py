from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..dispatcher import Envelope
from ..models import Action

router = APIRouter()


def _respond(envelope: Envelope) -> JSONResponse:
    return JSONResponse(envelope.to_dict(), status_code=envelope.status_code)


@router.post("/command")
async def post_command(request: Request):
    body = await request.body()
    envelope = await request.app.state.context.dispatcher.handle(body)
    return _respond(envelope)


@router.post("/authenticate")
async def authenticate(request: Request):
    envelope = await request.app.state.context.dispatcher.handle({"action": Action.AUTHENTICATE.value})
    return _respond(envelope)


@router.post("/enroll/{voter_id}")
async def enroll(request: Request, voter_id: str):
    envelope = await request.app.state.context.dispatcher.handle(
        {"action": Action.ENROLL_BIOMETRIC.value, "voterId": voter_id}
    )
    return _respond(envelope)


@router.post("/verify/{voter_id}")
async def verify(request: Request, voter_id: str):
    envelope = await request.app.state.context.dispatcher.handle(
        {"action": Action.VERIFY_BIOMETRIC.value, "voterId": voter_id}
    )
    return _respond(envelope)


@router.post("/clear")
async def clear(request: Request):
    envelope = await request.app.state.context.dispatcher.handle({"action": Action.CLEAR_BIOMETRIC_DB.value})
    return _respond(envelope)
