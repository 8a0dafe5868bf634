"""
Route table of the client. Paths are matched segment by segment; ":name"
segments capture parameters. Unknown paths render the "/" view, and protected
views fall back to the login view when there is no session.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Route:
    path: str
    view: str
    protected: bool = True

    @property
    def segments(self) -> List[str]:
        return _segments(self.path)

    def match(self, path: str) -> Optional[Dict[str, str]]:
        parts = _segments(path)
        if len(parts) != len(self.segments):
            return None
        params = {}
        for pattern, part in zip(self.segments, parts):
            if pattern.startswith(":"):
                params[pattern[1:]] = part
            elif pattern != part:
                return None
        return params


@dataclass
class RouteMatch:
    path: str
    view: str
    params: Dict[str, str] = field(default_factory=dict)
    # set when a protected path sent the user to login
    redirect_from: Optional[str] = None


LOGIN_PATH = "/login"
HOME_PATH = "/"

ROUTES = (
    Route(LOGIN_PATH, "login", protected=False),
    Route("/register", "register", protected=False),
    Route(HOME_PATH, "organizations"),
    Route("/profile", "profile"),
    Route("/create-profile", "create_profile"),
    Route("/:organization_id/tickets", "tickets"),
    Route("/:organization_id/tickets/:ticket_id", "ticket"),
    Route("/:organization_id/profile", "organization_profile"),
)


def _segments(path: str) -> List[str]:
    path = path.split("?", 1)[0].split("#", 1)[0]
    return [part for part in path.split("/") if part]


def find_route(path: str):
    for route in ROUTES:
        params = route.match(path)
        if params is not None:
            return route, params
    return None, {}


def resolve(path: str, session: Any = None) -> RouteMatch:
    route, params = find_route(path)
    if route is None:
        route, params = find_route(HOME_PATH)
        path = HOME_PATH
    if route.protected and not session:
        return RouteMatch(LOGIN_PATH, "login", redirect_from=path)
    return RouteMatch(path, route.view, params)
