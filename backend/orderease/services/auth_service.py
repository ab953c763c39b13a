# Overview: Service-layer operations for auth; login, principals, refresh, logout, password change.

"""
Authentication for the three kinds of callers.

- Operators log in with their own username.
- Shop owners log in with the shop's owner_username; their token carries
  user_id = shop id and username = "shop_" + owner_username.
- Customers (registered users, or the per-shop system user reached
  through a temp token) carry their user id and user name.

Unknown users and wrong passwords produce the same InvalidCredentials
error. A shop owner whose shop has expired gets ShopExpired.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..errors import InvalidCredentials, InvalidInput, NotFound, ShopExpired, Unauthenticated
from ..models import Operator, Shop, User
from ..passwords import hash_password, validate_strict_password, verify_password
from ..repositories import OperatorRepository, ShopRepository, UserRepository
from .concurrency import with_transaction
from . import token_service
from .token_service import IssuedToken, TokenClaims

SHOP_USERNAME_PREFIX = "shop_"

ROLE_ADMIN = "admin"
ROLE_SHOP = "shop"
ROLE_USER = "user"

operators = OperatorRepository()
shops = ShopRepository()
users = UserRepository()

_dummy_hash: str | None = None


@dataclass(frozen=True)
class OperatorPrincipal:
    user_id: int
    username: str

    def is_admin(self) -> bool:
        return True

    def scoped_shop_id(self) -> int | None:
        return None


@dataclass(frozen=True)
class ShopOwnerPrincipal:
    shop_id: int
    username: str

    @property
    def user_id(self) -> int:
        return self.shop_id

    def is_admin(self) -> bool:
        return False

    def scoped_shop_id(self) -> int | None:
        return self.shop_id


@dataclass(frozen=True)
class CustomerPrincipal:
    user_id: int
    username: str
    # Set for the synthetic system user; customers reached by temp token stay in that shop
    shop_id: int | None = None

    def is_admin(self) -> bool:
        return False

    def scoped_shop_id(self) -> int | None:
        return self.shop_id


Principal = Union[OperatorPrincipal, ShopOwnerPrincipal, CustomerPrincipal]


def is_staff(principal: Principal) -> bool:
    return isinstance(principal, (OperatorPrincipal, ShopOwnerPrincipal))


@dataclass(frozen=True)
class LoginResult:
    token: IssuedToken
    role: str
    principal: Principal
    user_info: dict

    def to_dict(self) -> dict:
        return {
            "token": self.token.token,
            "expiredAt": self.token.expires_at_unix,
            "role": self.role,
            "user_info": self.user_info,
        }


def shop_token_username(owner_username: str) -> str:
    return SHOP_USERNAME_PREFIX + owner_username


def _burn_password_check(password: str) -> None:
    """Spend one bcrypt check so unknown users cost the same as wrong passwords."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("orderease-timing-guard")
    verify_password(password, _dummy_hash)


def _operator_login(operator: Operator) -> LoginResult:
    issued = token_service.mint_token(operator.id, operator.username, True)
    return LoginResult(
        token=issued,
        role=ROLE_ADMIN,
        principal=OperatorPrincipal(user_id=operator.id, username=operator.username),
        user_info={"id": str(operator.id), "username": operator.username},
    )


def _shop_login(shop: Shop) -> LoginResult:
    username = shop_token_username(shop.owner_username)
    issued = token_service.mint_token(shop.id, username, False)
    return LoginResult(
        token=issued,
        role=ROLE_SHOP,
        principal=ShopOwnerPrincipal(shop_id=shop.id, username=username),
        user_info={
            "id": str(shop.id),
            "shop_id": str(shop.id),
            "username": shop.owner_username,
            "shop_name": shop.name,
        },
    )


def customer_login_result(user: User, shop: Shop | None = None) -> LoginResult:
    issued = token_service.mint_token(user.id, user.name, False)
    info = {"id": str(user.id), "username": user.name, "type": user.type}
    if shop is not None:
        info["shop_id"] = str(shop.id)
        info["shop_name"] = shop.name
    return LoginResult(
        token=issued,
        role=ROLE_USER,
        principal=CustomerPrincipal(
            user_id=user.id,
            username=user.name,
            shop_id=shop.id if shop is not None else None,
        ),
        user_info=info,
    )


def login(username: str, password: str) -> LoginResult:
    """Universal login: operator first, then shop owner."""
    if not username or not password:
        raise InvalidInput("username and password are required")

    operator = operators.get_by_username(username)
    if operator is not None and verify_password(password, operator.password_hash):
        return _operator_login(operator)

    shop = shops.get_by_owner_username(username)
    if shop is None:
        if operator is None:
            _burn_password_check(password)
        raise InvalidCredentials()

    if shop.is_expired():
        raise ShopExpired()

    if not verify_password(password, shop.owner_password_hash):
        raise InvalidCredentials()

    return _shop_login(shop)


def customer_login(name: str, password: str) -> LoginResult:
    if not name or not password:
        raise InvalidInput("username and password are required")
    user = users.get_by_name(name)
    if user is None or user.is_system:
        _burn_password_check(password)
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    return customer_login_result(user)


def _shop_id_of_system_user(user: User) -> int | None:
    if not user.is_system:
        return None
    middle = user.name[len(SHOP_USERNAME_PREFIX):-len("_system")]
    return int(middle) if middle.isdigit() else None


def resolve_principal(claims: TokenClaims) -> Principal:
    """
    Map verified claims to a principal, re-checking the backing record.

    Operators must still exist. Shop owners must still own a live shop.
    Customers must still exist under the same name.
    """
    if claims.is_admin:
        operator = operators.get(claims.user_id)
        if operator is None or operator.username != claims.username:
            raise Unauthenticated("Invalid token")
        return OperatorPrincipal(user_id=operator.id, username=operator.username)

    if claims.username.startswith(SHOP_USERNAME_PREFIX):
        shop = shops.get(claims.user_id)
        if shop is not None and shop_token_username(shop.owner_username) == claims.username:
            if shop.is_expired():
                raise ShopExpired()
            return ShopOwnerPrincipal(shop_id=shop.id, username=claims.username)

    user = users.get(claims.user_id)
    if user is None or user.name != claims.username:
        raise Unauthenticated("Invalid token")

    shop_id = _shop_id_of_system_user(user)
    if shop_id is not None:
        shop = shops.get(shop_id)
        if shop is None:
            raise Unauthenticated("Invalid token")
        if shop.is_expired():
            raise ShopExpired()
    return CustomerPrincipal(user_id=user.id, username=user.name, shop_id=shop_id)


def authenticate(token: str) -> tuple[TokenClaims, Principal]:
    claims = token_service.parse_token(token)
    return claims, resolve_principal(claims)


def refresh(token: str) -> IssuedToken:
    """
    Mint a fresh token for the same identity.

    Shop-scoped tokens re-check that the shop exists and has not expired.
    The presented token stays valid until its own exp or logout.
    """
    claims, _principal = authenticate(token)
    return token_service.mint_token(claims.user_id, claims.username, claims.is_admin)


def logout(token: str) -> None:
    token_service.revoke_token(token)


def change_password(principal: Principal, old_password: str, new_password: str) -> None:
    """Operators and shop owners only; the new password must pass the strict policy."""
    if not old_password or not new_password:
        raise InvalidInput("old_password and new_password are required")

    if isinstance(principal, OperatorPrincipal):
        record = operators.get(principal.user_id)
        attr = "password_hash"
    elif isinstance(principal, ShopOwnerPrincipal):
        record = shops.get(principal.shop_id)
        attr = "owner_password_hash"
    else:
        raise InvalidInput("Password change is only available to operators and shop owners")

    if record is None:
        raise NotFound("Account not found")
    if not verify_password(old_password, getattr(record, attr)):
        raise InvalidCredentials("Old password is incorrect")
    validate_strict_password(new_password)

    def _op():
        setattr(record, attr, hash_password(new_password))

    with_transaction(_op)
