"""Authentication endpoints: signup, login, me, logout, password reset/update."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status

from .. import schemas
from ..deps import get_client, get_settings
from ..exceptions import UnauthenticatedError
from ..hosted.auth import AuthSession
from ..hosted.client import HostedClient
from ..telemetry import clear_user_context, set_user_context

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Bad Request"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    },
)


def _cookie_kwargs(request: Request, value: str, max_age: int) -> dict:
    """Cookie settings that work for both local dev and production.

    SameSite=None requires Secure, which browsers drop over plain HTTP, so
    local HTTP falls back to Lax.
    """
    settings = get_settings()
    kwargs = {
        "key": "access_token",
        "value": value,
        "httponly": True,
        "samesite": "none",
        "secure": True,
        "max_age": max_age,
        "path": "/",
    }
    if request.url.scheme == "http":
        kwargs["samesite"] = "lax"
        kwargs["secure"] = False
    if settings.COOKIE_DOMAIN:
        kwargs["domain"] = settings.COOKIE_DOMAIN
    return kwargs


def _start_cookie_session(request: Request, response: Response, session: AuthSession) -> schemas.SessionOut:
    response.set_cookie(**_cookie_kwargs(request, f"Bearer {session.access_token}", session.expires_in))
    set_user_context(user_id=str(session.user.id), email=session.user.email)
    return schemas.SessionOut(user=schemas.UserOut.model_validate(session.user), expires_in=session.expires_in)


@router.post(
    "/signup",
    response_model=schemas.SessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
    description="""
    Create the user, their credentials and their profile, then sign in.

    Sets the `access_token` cookie on success. Responds 400 when the email is
    already registered.
    """,
)
def signup(
    payload: schemas.SignUpIn,
    request: Request,
    response: Response,
    client: HostedClient = Depends(get_client),
):
    session = client.auth.sign_up(
        payload.email,
        payload.password,
        metadata={"first_name": payload.first_name, "last_name": payload.last_name},
    )
    logger.info("[AUTH] Signup complete for user %s", session.user.id)
    return _start_cookie_session(request, response, session)


@router.post(
    "/login",
    response_model=schemas.SessionOut,
    summary="Sign in",
    description="Authenticate with email and password. Sets an HTTP-only `access_token` cookie.",
)
def login(
    payload: schemas.SignInIn,
    request: Request,
    response: Response,
    client: HostedClient = Depends(get_client),
):
    session = client.auth.sign_in(payload.email, payload.password)
    return _start_cookie_session(request, response, session)


@router.post("/logout", response_model=schemas.SuccessResponse, summary="Sign out")
def logout(request: Request, response: Response, client: HostedClient = Depends(get_client)):
    """Clear the access token cookie."""
    client.auth.sign_out()
    clear_user_context()
    response.set_cookie(**_cookie_kwargs(request, "", 0))
    return schemas.SuccessResponse(detail="logged out")


@router.get("/me", response_model=schemas.UserOut, summary="Current user")
def me(client: HostedClient = Depends(get_client)):
    user = client.auth.get_user()
    if user is None:
        raise UnauthenticatedError()
    return user


@router.post(
    "/password/reset",
    response_model=schemas.SuccessResponse,
    summary="Request a password reset link",
    description="""
    Sends a recovery link to the address when it belongs to an account.

    The response is the same whether or not the email is registered.
    """,
)
def request_password_reset(payload: schemas.PasswordResetIn, client: HostedClient = Depends(get_client)):
    client.auth.reset_password(payload.email, redirect_to=get_settings().PASSWORD_RESET_REDIRECT_URL)
    return schemas.SuccessResponse(detail="If the email is registered, a reset link has been sent")


@router.post(
    "/password",
    response_model=schemas.SuccessResponse,
    summary="Set a new password",
    description="Requires a session cookie, or the recovery token as `Authorization: Bearer <token>`.",
)
def update_password(payload: schemas.PasswordUpdateIn, client: HostedClient = Depends(get_client)):
    client.auth.update_password(payload.password)
    return schemas.SuccessResponse(detail="Password updated")
