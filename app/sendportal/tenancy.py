from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Query, Session

from app.sendportal.models import Team, User

M = TypeVar("M")


def current_team() -> Team | None:
    """Team resolved for the logged-in user during this request."""
    if getattr(g, "current_team", None) is not None:
        return g.current_team
    user: User | None = getattr(g, "current_user", None)
    team = user.current_team() if user else None
    g.current_team = team
    return team


def team_query(s: Session, model: type[M]) -> "Query[M]":
    """Query over `model` restricted to rows owned by the current team."""
    team = current_team()
    if team is None:
        abort(403)
    return s.query(model).filter(model.team_id == team.id)  # type: ignore[attr-defined]


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        # Unauthenticated → redirect to login.
        if not user or not user.is_active:
            nxt = request.full_path or request.path
            # Avoid trailing '?' from full_path when there is no query string.
            if nxt.endswith("?"):
                nxt = nxt[:-1]
            return redirect(url_for("auth.login_get", next=nxt))
        # Authenticated but not on any team → 403
        if current_team() is None:
            g.forbidden_reason = "You are not a member of any team."
            abort(403)
        return fn(*args, **kwargs)

    return wrapped
