from fastapi import Request

from database import session_scope
from services.callback_receiver import CallbackReceiver
from services.stk_initiator import StkInitiator


async def get_session(request: Request):
    async with session_scope(request.app.state.session_factory) as session:
        yield session


def get_initiator(request: Request) -> StkInitiator:
    return request.app.state.initiator


def get_callback_receiver(request: Request) -> CallbackReceiver:
    return request.app.state.callback_receiver
