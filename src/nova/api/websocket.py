"""
WebSocket endpoint for the voice loop

The browser forwards speech recognition/synthesis events as JSON; the
server-side SpeechLoop answers with commands:

    client -> {"event": "result", "transcript": "nova what time is it"}
    server -> {"type": "command", "command": "stop_recognition"}
    server -> {"type": "command", "command": "speak", "text": "Current time is 09:30 AM"}
    server -> {"type": "state", "state": "speaking", ...}
"""

import asyncio
import uuid
from typing import Optional

import structlog
from fastapi import Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from nova.api.users import answer_query
from nova.core.config import config
from nova.core.speech_loop import SpeechLoop
from nova.models.messages import ClientEvent, ErrorMessage
from nova.services.database import DatabaseService, get_database_service
from nova.services.responder import QueryResponder, get_query_responder

logger = structlog.get_logger()

# Policy violation: no valid session
WS_CLOSE_UNAUTHORIZED = 1008


class VoiceSession:
    """
    One connected client: a SpeechLoop wired to the user's profile

    Query handling runs in background tasks so barge-in and logout events
    keep flowing while the model answers.
    """

    def __init__(self, websocket: WebSocket, user: dict,
                 db: DatabaseService, responder: QueryResponder):
        self.session_id = str(uuid.uuid4())
        self.websocket = websocket
        self.user = user
        self.db = db
        self.responder = responder
        self._tasks: set[asyncio.Task] = set()

        self.loop = SpeechLoop(
            emit=self.send,
            handler=self.answer,
            wake_word=user.get("assistant_name") or config.DEFAULT_ASSISTANT_NAME,
        )

        logger.info("voice.session.created",
                    session_id=self.session_id,
                    user_id=user["id"],
                    wake_word=self.loop.wake_word)

    async def send(self, message: BaseModel) -> None:
        await self.websocket.send_text(message.model_dump_json(exclude_none=True))

    async def answer(self, transcript: str) -> str:
        reply = await answer_query(self.db, self.responder, self.user["id"], transcript)
        if reply is None:
            raise RuntimeError("User not found")
        return reply.response

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, event: ClientEvent) -> None:
        if event.event == "ready":
            await self.loop.greet(self.user.get("name"))
        elif event.event == "result":
            self._spawn(self.loop.on_result(event.transcript))
        else:
            await self.loop.dispatch(event.event, transcript=event.transcript, error=event.error)

    async def run(self) -> None:
        try:
            while True:
                raw = await self.websocket.receive_text()
                try:
                    event = ClientEvent.model_validate_json(raw)
                except ValidationError as e:
                    logger.warning("voice.session.bad_event",
                                   session_id=self.session_id,
                                   error=str(e))
                    await self.send(ErrorMessage(error="Invalid event", code="INVALID_EVENT"))
                    continue

                await self.handle(event)
        except WebSocketDisconnect:
            logger.info("voice.session.disconnected", session_id=self.session_id)
        finally:
            await self.close()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self.loop.close()
        logger.info("voice.session.closed", session_id=self.session_id)


async def voice_websocket(
    websocket: WebSocket,
    token: Optional[str] = None,
    db: DatabaseService = Depends(get_database_service),
    responder: QueryResponder = Depends(get_query_responder),
):
    """Authenticate by cookie or ?token= and run the speech loop"""
    session_token = websocket.cookies.get(config.SESSION_COOKIE_NAME) or token
    user_id = await db.get_session_user_id(session_token) if session_token else None
    user = await db.get_user(user_id) if user_id else None

    if not user:
        logger.warning("voice.session.unauthorized")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    await VoiceSession(websocket, user, db, responder).run()
