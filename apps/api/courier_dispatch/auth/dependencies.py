from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from courier_dispatch.auth.jwt import JwtError, decode_jwt, unauthorized
from courier_dispatch.config import allowed_roles_list, settings
from courier_dispatch.models.courier import Courier
from courier_dispatch.models.order import Order

CUSTOMER = "CUSTOMER"
COURIER = "COURIER"
ADMIN = "ADMIN"

TEST_BYPASS_USER = "test-admin"


@dataclass
class AuthContext:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization and settings.enable_test_auth_bypass:
        return AuthContext(user_id=TEST_BYPASS_USER, role=ADMIN)
    if not authorization or not authorization.startswith("Bearer "):
        raise unauthorized("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except JwtError as err:
        raise unauthorized("Invalid JWT") from err

    role = payload.get("role")
    user_id = payload.get("sub")
    if role not in allowed_roles_list() or not isinstance(user_id, str):
        raise unauthorized("Invalid JWT claims")
    return AuthContext(user_id=user_id, role=role)


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


require_admin = require_roles(ADMIN)


def ensure_acting_as_courier(auth: AuthContext, courier: Courier) -> None:
    """Couriers may only act for their own account; admins may act for anyone."""
    if auth.role == COURIER and courier.user_id != auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Couriers may only act for themselves",
        )


def ensure_order_customer(auth: AuthContext, order: Order) -> None:
    if auth.role == CUSTOMER and order.customer_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your order")
