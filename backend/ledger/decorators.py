# Overview: Request-context and role decorators for API routes.

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, jsonify, request

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_CASHIER = "CASHIER"
ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_CASHIER)
ADMIN_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN)


@dataclass(frozen=True)
class RequestContext:
    tenant_id: int
    actor_id: int
    role: str


def _header_int(req, name: str) -> int | None:
    value = (req.headers.get(name) or "").strip()
    if not value.isdigit():
        return None
    return int(value)


def resolve_from_headers(req) -> RequestContext | None:
    """
    Default context resolver.

    The upstream authentication layer is trusted to have set
    X-Tenant-Id, X-Actor-Id and X-Actor-Role.
    """
    tenant_id = _header_int(req, "X-Tenant-Id")
    actor_id = _header_int(req, "X-Actor-Id")
    role = (req.headers.get("X-Actor-Role") or "").strip().upper()
    if tenant_id is None or actor_id is None or role not in ROLES:
        return None
    return RequestContext(tenant_id=tenant_id, actor_id=actor_id, role=role)


def require_context(f):
    """
    Establish tenant context for the request.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant_id: tenant every query is scoped to
    - g.actor_id: who performs the operation (recorded on movements)
    - g.role: SUPER_ADMIN, ADMIN or CASHIER
    - g.context: the full RequestContext

    Returns 401 when no context can be resolved.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolver = current_app.config.get("CONTEXT_RESOLVER") or resolve_from_headers
        context = resolver(request)
        if not context:
            return jsonify({"error": "Authentication required"}), 401

        g.tenant_id = context.tenant_id
        g.actor_id = context.actor_id
        g.role = context.role
        g.context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. SUPER_ADMIN passes every check."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "context"):
                return jsonify({"error": "Authentication required"}), 401

            if g.role != ROLE_SUPER_ADMIN and g.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    return require_role(*ADMIN_ROLES)(f)
