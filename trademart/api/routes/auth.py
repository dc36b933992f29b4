from fastapi import APIRouter, Request, Response

from trademart.api.deps import DB, Auth, CurrentSession, OptionalSession
from trademart.core.security import AuthConfig, create_csrf_token
from trademart.schemas.auth import LoginRequest, PasswordChangeRequest, RegisterRequest
from trademart.services.auth_service import AuthService, build_user_payload
from trademart.utils.envelopes import api_success

router = APIRouter(tags=["auth"])


def set_session_cookies(response: Response, config: AuthConfig, token: str) -> str:
	csrf_token = create_csrf_token()
	common = {
		"max_age": config.cookie_max_age_seconds,
		"secure": config.secure_cookies,
		"samesite": "lax",
		"domain": config.cookie_domain,
		"path": "/",
	}
	response.set_cookie(config.cookie_name, token, httponly=True, **common)
	response.set_cookie(config.csrf_cookie_name, csrf_token, httponly=False, **common)
	return csrf_token


def clear_session_cookies(response: Response, config: AuthConfig) -> None:
	for name in (config.cookie_name, config.csrf_cookie_name):
		response.delete_cookie(name, path="/", domain=config.cookie_domain)


@router.post("/auth/register", response_model=dict)
async def register(payload: RegisterRequest, response: Response, db: DB, config: Auth):
	user, identity = await AuthService.register(
		db,
		email=payload.email,
		password=payload.password,
		full_name=payload.full_name,
		phone=payload.phone,
		role=payload.role,
		company_name=payload.company_name,
	)
	user_payload = build_user_payload(user, identity)
	if payload.no_session:
		return api_success({"user": user_payload, "session_skipped": True})

	token = AuthService.issue_token(user, identity, config)
	csrf_token = set_session_cookies(response, config, token)
	return api_success({"user": user_payload, "access_token": token, "csrf_token": csrf_token})


@router.post("/auth/login", response_model=dict)
async def login(payload: LoginRequest, response: Response, db: DB, config: Auth):
	user, identity = await AuthService.authenticate(db, payload.email, payload.password, payload.role_hint)
	token = AuthService.issue_token(user, identity, config)
	csrf_token = set_session_cookies(response, config, token)
	return api_success({"user": build_user_payload(user, identity), "access_token": token, "csrf_token": csrf_token})


@router.post("/auth/logout", response_model=dict)
async def logout(response: Response, config: Auth):
	clear_session_cookies(response, config)
	return api_success({"logged_out": True})


@router.get("/auth/me", response_model=dict)
async def me(request: Request, response: Response, session: OptionalSession, config: Auth):
	"""Current user, or `user: null` when the caller has no valid session."""
	if session is None:
		if request.cookies.get(config.cookie_name):
			clear_session_cookies(response, config)
		return api_success({"user": None})

	# Re-issue the CSRF cookie for cookie sessions that lost it
	if not session.is_bearer and not request.cookies.get(config.csrf_cookie_name):
		set_session_cookies(response, config, session.token)

	return api_success({"user": build_user_payload(session.user, session.identity)})


@router.patch("/auth/password", response_model=dict)
async def change_password(payload: PasswordChangeRequest, session: CurrentSession, db: DB):
	await AuthService.change_password(db, session.user.id, payload.new_password, payload.current_password)
	return api_success({"password_changed": True})
