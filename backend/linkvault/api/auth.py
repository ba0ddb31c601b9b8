"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, Request, Response, status

from linkvault.api.deps import get_current_user_id, get_session_service
from linkvault.api.errors import problem_response
from linkvault.api.ratelimit import limiter, login_rate_limit
from linkvault.config import get_settings
from linkvault.schemas.auth import (
    LoginRequest,
    LoginResponse,
    ProblemResponse,
    RefreshResponse,
    RegisterRequest,
    UserResponse,
)
from linkvault.services.sessions import INVALID_REFRESH_TOKEN, SessionService
from linkvault.services.tokens import IssuedRefreshToken

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()

PROBLEM_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ProblemResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ProblemResponse},
}


def set_refresh_cookie(response: Response, refresh_token: IssuedRefreshToken) -> None:
    """Issue secure HttpOnly refresh-token cookie scoped to the auth routes that redeem or revoke it."""
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token.token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path=settings.refresh_cookie_path,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
    )


def clear_refresh_cookie(response: Response) -> None:
    """Clear refresh-token cookie."""
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


def read_refresh_cookie(request: Request) -> str | None:
    token = request.cookies.get(settings.refresh_cookie_name)
    if token is None or not token.strip():
        return None
    return token


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"model": ProblemResponse}, **PROBLEM_RESPONSES},
)
def register(
    body: RegisterRequest,
    request: Request,
    service: SessionService = Depends(get_session_service),
):
    """Register a new user."""
    result = service.register(body.name, body.email, body.password)
    if not result.ok:
        return problem_response(request, result.error)
    return UserResponse.model_validate(result.value)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={status.HTTP_429_TOO_MANY_REQUESTS: {"model": ProblemResponse}, **PROBLEM_RESPONSES},
)
@limiter.limit(login_rate_limit)
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    service: SessionService = Depends(get_session_service),
):
    """Login; returns an access token and sets the refresh-token cookie."""
    result = service.login(body.email, body.password)
    if not result.ok:
        return problem_response(request, result.error)

    outcome = result.value
    set_refresh_cookie(response, outcome.refresh_token)
    return LoginResponse(
        access_token=outcome.access_token.token,
        user=UserResponse.model_validate(outcome.user),
    )


@router.post("/refresh", response_model=RefreshResponse, responses=PROBLEM_RESPONSES)
def refresh_tokens(
    request: Request,
    response: Response,
    service: SessionService = Depends(get_session_service),
):
    """Rotate the refresh-token cookie and issue a new access token."""
    refresh_token = read_refresh_cookie(request)
    if refresh_token is None:
        return problem_response(request, INVALID_REFRESH_TOKEN)

    result = service.refresh(refresh_token)
    if not result.ok:
        failure = problem_response(request, result.error)
        clear_refresh_cookie(failure)
        return failure

    set_refresh_cookie(response, result.value.refresh_token)
    return RefreshResponse(access_token=result.value.access_token.token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    service: SessionService = Depends(get_session_service),
):
    """Revoke the presented refresh token and clear its cookie."""
    result = service.logout(read_refresh_cookie(request))
    if not result.ok:
        failure = problem_response(request, result.error)
        clear_refresh_cookie(failure)
        return failure

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(response)
    return response


@router.get("/me", response_model=UserResponse, responses={status.HTTP_401_UNAUTHORIZED: {"model": ProblemResponse}})
def me(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Return the authenticated caller's profile."""
    result = service.get_profile(user_id)
    if not result.ok:
        return problem_response(request, result.error)
    return UserResponse.model_validate(result.value)
