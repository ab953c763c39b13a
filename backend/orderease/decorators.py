# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import Forbidden, InvalidInput, Unauthenticated
from .services import auth_service
from .services.auth_service import CustomerPrincipal, OperatorPrincipal
from .validation import parse_id


def bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthenticated("Authentication required")
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Authentication required")
    return token


def require_auth(f):
    """
    Require a valid, unrevoked bearer token.

    Sets on flask.g:
    - g.token: the raw bearer token
    - g.claims: decoded TokenClaims
    - g.principal: OperatorPrincipal | ShopOwnerPrincipal | CustomerPrincipal
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        claims, principal = auth_service.authenticate(token)
        g.token = token
        g.claims = claims
        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def require_operator(f):
    """Operator-only endpoint. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not isinstance(getattr(g, "principal", None), OperatorPrincipal):
            raise Forbidden("Operator access required")
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """Operators and shop owners. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = getattr(g, "principal", None)
        if principal is None or not auth_service.is_staff(principal):
            raise Forbidden("Shop staff access required")
        return f(*args, **kwargs)

    return decorated_function


def require_customer(f):
    """Customer-facing endpoint. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not isinstance(getattr(g, "principal", None), CustomerPrincipal):
            raise Forbidden("Customer access required")
        return f(*args, **kwargs)

    return decorated_function


def scoped_shop_id(raw_shop_id=None) -> int:
    """
    Resolve the shop a staff request targets.

    Shop owners are pinned to their own shop; operators must name one.
    A shop owner naming another shop gets Forbidden.
    """
    principal = g.principal
    own = principal.scoped_shop_id()
    if raw_shop_id in (None, ""):
        if own is None:
            raise InvalidInput("shop_id is required")
        return own
    shop_id = parse_id(raw_shop_id, "shop_id")
    if own is not None and shop_id != own:
        raise Forbidden()
    return shop_id
