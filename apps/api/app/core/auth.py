from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings
from app.core.context import get_request_context


@dataclass
class AuthUser:
    sub: str
    role: str
    branch_id: str | None = None
    region_id: str | None = None
    name: str | None = None


def _optional_claim(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return str(value)


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return AuthUser(sub="anonymous", role="guest")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return AuthUser(sub="anonymous", role="guest")

    subject = str(payload.get("sub", "anonymous"))
    role = payload.get("role")
    if not isinstance(role, str) or not role:
        role = "guest"
    context = get_request_context(request)
    if context is not None:
        context.user_id = subject
    return AuthUser(
        sub=subject,
        role=role,
        branch_id=_optional_claim(payload, "branch_id"),
        region_id=_optional_claim(payload, "region_id"),
        name=_optional_claim(payload, "name"),
    )
