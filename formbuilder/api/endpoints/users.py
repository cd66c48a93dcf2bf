from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ... import schemas
from ...core import security
from ...crud import crud_form, crud_role, crud_user
from ...database import get_db_session
from ...services.notifier import Notifier, get_notifier
from ..deps import get_current_user_id

router = APIRouter(prefix="/users", tags=["users"])


def _token_for(user) -> schemas.Token:
    return schemas.Token(
        access_token=security.create_access_token(user.id),
        user_id=user.id,
        email=user.email,
    )


@router.post("/register", response_model=schemas.Token, status_code=201)
async def register(user_in: schemas.UserRegister, db: AsyncSession = Depends(get_db_session)):
    async with db.begin():
        user = await crud_user.register_user(db, user_in.email, user_in.password)
    return _token_for(user)


@router.post("/login", response_model=schemas.Token)
async def login(credentials: schemas.UserLogin, db: AsyncSession = Depends(get_db_session)):
    user = await crud_user.authenticate_user(db, credentials.email, credentials.password)
    return _token_for(user)


@router.get("/me/forms", response_model=List[schemas.FormDetail])
async def my_forms(
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    return await crud_form.list_user_forms(db, user_id)


@router.post("/invite", response_model=schemas.Message)
async def invite(
    invite_in: schemas.InviteRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    """Nur der Eigentümer darf weitere Bearbeiter oder Betrachter einladen"""
    async with db.begin():
        form = await crud_role.require_owner(db, user_id, invite_in.form_id)
        form_title = form.title
        user, temporary_password = await crud_user.invite_user(
            db, invite_in.form_id, invite_in.email, invite_in.role_name
        )
        invited_email = user.email

    background_tasks.add_task(
        notifier.notify_invitation,
        invited_email,
        form_title,
        invite_in.role_name,
        temporary_password,
    )
    return schemas.Message(message=f"User {invited_email} invited as {invite_in.role_name}.")
