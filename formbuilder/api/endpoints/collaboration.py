import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_role
from ...database import get_db_session
from ...services.collaboration import CollaborationHub, get_hub
from ..deps import user_id_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["collaboration"])

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403


@router.websocket("/forms/{form_id}/collaborate")
async def collaborate(
    websocket: WebSocket,
    form_id: int,
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
    hub: CollaborationHub = Depends(get_hub),
):
    """
    Collaboration room of a form. Clients send ``{"type": "edit", "document": ...}``
    and receive ``initialContent``, ``documentUpdate`` and ``formUpdated`` events.
    """
    await websocket.accept()

    user_id = user_id_from_token(token)
    if user_id is None:
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return

    role = await crud_role.get_role(db, user_id, form_id)
    # Verbindung zum Pool zurückgeben, der Socket kann lange offen bleiben
    await db.close()
    if role not in crud_role.MUTATE_ROLES:
        logger.warning("User %s (role=%s) refused in room %s", user_id, role, form_id)
        await websocket.close(code=CLOSE_FORBIDDEN)
        return

    hub.join(form_id, websocket)
    logger.info("User %s joined room %s", user_id, form_id)
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "edit":
                hub.edit(form_id, websocket, message.get("document"))
    except WebSocketDisconnect:
        logger.info("User %s left room %s", user_id, form_id)
    finally:
        hub.leave(form_id, websocket)
