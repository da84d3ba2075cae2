"""
User API

Current profile, assistant customization, query history and the
ask-to-assistant endpoint. Failures are reported with generic messages.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from nova.api.auth import get_current_user_id
from nova.core.config import config
from nova.core.error_handling import log_and_return_error
from nova.core.security import SecurityConfig, limiter, safe_error_response, validate_input_string
from nova.models.messages import AskRequest, AssistantReply, HistoryResponse, UserResponse
from nova.services.database import DatabaseService, get_database_service
from nova.services.image_host import get_image_host, validate_image_file
from nova.services.responder import QueryResponder, get_query_responder

logger = structlog.get_logger()

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/current", response_model=UserResponse)
async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_database_service),
):
    """Profile of the signed-in user"""
    try:
        user = await db.get_user(user_id)
        if not user:
            raise HTTPException(status_code=400, detail="User not found")
        history = await db.get_history(user_id)
    except HTTPException:
        raise
    except Exception as e:
        log_and_return_error(e, operation="get_current_user", component="api.user", user_id=user_id)
        raise HTTPException(status_code=500, detail="Error while fetching user")

    return UserResponse.from_record(user, history)


@router.post("/update", response_model=UserResponse)
@limiter.limit(SecurityConfig.UPLOAD_RATE_LIMIT)
async def update_assistant(
    request: Request,
    assistantName: str = Form(...),
    imageUrl: Optional[str] = Form(None),
    assistantImage: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_database_service),
):
    """
    Update the assistant's name and avatar

    The avatar is either an uploaded file (sent to the image host) or an
    image URL supplied by the client.
    """
    assistant_name = validate_input_string(assistantName, "Assistant name", max_length=50)

    if assistantImage is not None and assistantImage.filename:
        validate_image_file(assistantImage)

    try:
        if assistantImage is not None and assistantImage.filename:
            content = await assistantImage.read()
            if len(content) > config.MAX_IMAGE_SIZE:
                raise HTTPException(status_code=413, detail="File size too large")
            image = await get_image_host().upload(
                assistantImage.filename,
                content,
                assistantImage.content_type or "application/octet-stream",
            )
        else:
            image = imageUrl.strip() if imageUrl else None

        user = await db.update_assistant(user_id, assistant_name, image)
        if not user:
            raise HTTPException(status_code=400, detail="User not found")
        history = await db.get_history(user_id)
    except HTTPException:
        raise
    except Exception as e:
        log_and_return_error(e, operation="update_assistant", component="api.user", user_id=user_id)
        raise HTTPException(status_code=500, detail="Error updating assistant info")

    return UserResponse.from_record(user, history)


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_database_service),
):
    """Past queries, oldest first"""
    if limit is not None and limit < 1:
        raise HTTPException(status_code=400, detail="limit must be a positive integer")

    try:
        history = await db.get_history(user_id, limit=limit)
    except Exception as e:
        log_and_return_error(e, operation="get_history", component="api.user", user_id=user_id)
        raise HTTPException(status_code=500, detail=safe_error_response(str(e)))

    return HistoryResponse(history=history, total=len(history))


async def answer_query(
    db: DatabaseService,
    responder: QueryResponder,
    user_id: str,
    command: str,
) -> Optional[AssistantReply]:
    """
    Record a query and answer it for the user's persona

    Returns:
        The reply, or None when the user doesn't exist
    """
    user = await db.get_user(user_id)
    if not user:
        return None

    await db.append_history(user_id, command)

    assistant_name = user.get("assistant_name") or config.DEFAULT_ASSISTANT_NAME
    return await responder.respond(command, assistant_name, user["name"])


@router.post("/asktoassistant", response_model=AssistantReply)
@limiter.limit(SecurityConfig.ASK_RATE_LIMIT)
async def ask_to_assistant(
    request: Request,
    body: AskRequest,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_database_service),
    responder: QueryResponder = Depends(get_query_responder),
):
    """Answer a spoken or typed command"""
    command = body.command.strip()
    if not command:
        return JSONResponse(status_code=400, content={"response": "Command is required"})

    try:
        reply = await answer_query(db, responder, user_id, command)
    except Exception as e:
        log_and_return_error(e, operation="ask_to_assistant", component="api.user", user_id=user_id)
        return JSONResponse(status_code=500, content={"response": "Error processing your request"})

    if reply is None:
        return JSONResponse(status_code=400, content={"response": "User not found"})

    logger.info("api.user.answered", user_id=user_id, type=reply.type)
    return reply
