"""
Screen controllers: each one owns its form handling and remote calls and
exposes a ScreenState (loading flag, error message, data, pending redirect).
Errors end up in state.error; a screen never raises to its caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from autocrm.client.auth import AuthClientError
from autocrm.client.context import AppContext
from autocrm.client.forms import (
    CommentForm, CreateOrganizationForm, CreateProfileForm, CreateTicketForm,
    LoginForm, RegistrationForm, form_error
)
from autocrm.client.routing import HOME_PATH, LOGIN_PATH, RouteMatch
from autocrm.core.errors import RpcError
from autocrm.rpc.client import NETWORK_ERROR

logger = logging.getLogger(__name__)


@dataclass
class ScreenState:
    loading: bool = False
    error: Optional[str] = None
    data: Any = None
    redirect: Optional[str] = None


class Screen:
    def __init__(self, app: AppContext):
        self.app = app
        self.state = ScreenState()

    async def _run(self, action: Callable[[], Awaitable[Any]]) -> Any:
        self.state.loading = True
        self.state.error = None
        try:
            return await action()
        except ValidationError as e:
            self.state.error = form_error(e)
        except (AuthClientError, RpcError) as e:
            self.state.error = e.message
        except Exception as e:
            logger.exception(f"{type(self).__name__} failed")
            self.state.error = str(e) or "An unexpected error occurred"
        finally:
            self.state.loading = False
        return None


class LoginScreen(Screen):
    def __init__(self, app: AppContext, redirect_from: Optional[str] = None):
        super().__init__(app)
        self.redirect_from = redirect_from

    async def submit(self, email: str, password: str):
        async def action():
            form = LoginForm(email=email, password=password)
            session = await self.app.auth.sign_in(form.email, form.password)
            self.state.data = session
            self.state.redirect = self.redirect_from or HOME_PATH
            return session
        return await self._run(action)


class RegisterScreen(Screen):
    async def submit(self, email: str, password: str, confirm_password: str):
        async def action():
            form = RegistrationForm(email=email, password=password, confirm_password=confirm_password)
            user, _ = await self.app.auth.sign_up(form.email, form.password)
            self.state.data = user
            self.state.redirect = LOGIN_PATH
            return user
        return await self._run(action)


class CreateProfileScreen(Screen):
    async def submit(self, full_name: str, avatar_url: Optional[str] = None):
        async def action():
            form = CreateProfileForm(full_name=full_name, avatar_url=avatar_url)
            profile = await self.app.rpc.mutate("createProfile", form.model_dump(exclude_none=True))
            self.app.mirror.put(profile)
            self.app.profile.set(profile)
            self.state.data = profile
            self.state.redirect = HOME_PATH
            return profile
        return await self._run(action)


class ProfileScreen(Screen):
    """Own profile; answered from the local mirror when the API is unreachable"""

    def __init__(self, app: AppContext, organization_id: Optional[str] = None):
        super().__init__(app)
        self.organization_id = organization_id

    async def load(self):
        async def action():
            user_id = await self.app.user_id()
            try:
                profile = await self.app.rpc.query("getProfile")
            except RpcError as e:
                if e.code != NETWORK_ERROR or not user_id:
                    raise
                profile = self.app.mirror.get(user_id)
                if profile is None:
                    raise
            else:
                if profile:
                    self.app.mirror.put(profile)
            self.app.profile.set(profile)
            self.state.data = profile
            if profile is None:
                self.state.redirect = "/create-profile"
            return profile
        return await self._run(action)


class OrganizationsScreen(Screen):
    async def load(self):
        async def action():
            self.state.data = await self.app.rpc.query("getOrganizations")
            return self.state.data
        return await self._run(action)

    async def create(self, name: str):
        async def action():
            form = CreateOrganizationForm(name=name)
            organization = await self.app.rpc.mutate("createOrganization", form.model_dump())
            self.state.data = await self.app.rpc.query("getOrganizations")
            return organization
        return await self._run(action)


class TicketsScreen(Screen):
    def __init__(self, app: AppContext, organization_id: str):
        super().__init__(app)
        self.organization_id = organization_id

    async def _fetch(self, **filters):
        query = {"organization_id": self.organization_id}
        query.update({k: v for k, v in filters.items() if v})
        self.state.data = await self.app.rpc.query("getTickets", query)
        return self.state.data

    async def load(self, status: Optional[str] = None, priority: Optional[str] = None):
        return await self._run(lambda: self._fetch(status=status, priority=priority))

    async def create(self, title: str, description: Optional[str] = None, priority: str = "medium"):
        async def action():
            form = CreateTicketForm(title=title, description=description, priority=priority)
            ticket = await self.app.rpc.mutate("createTicket", {
                "organization_id": self.organization_id,
                **form.model_dump(exclude_none=True),
            })
            await self._fetch()
            return ticket
        return await self._run(action)


class TicketScreen(Screen):
    def __init__(self, app: AppContext, organization_id: str, ticket_id: str):
        super().__init__(app)
        self.organization_id = organization_id
        self.ticket_id = ticket_id

    async def _fetch(self):
        ref = {"ticket_id": self.ticket_id}
        ticket, comments = await self.app.rpc.batch([
            ("getTicket", ref),
            ("getTicketComments", ref),
        ])
        for result in (ticket, comments):
            if isinstance(result, RpcError):
                raise result
        self.state.data = {"ticket": ticket, "comments": comments}
        return self.state.data

    async def load(self):
        return await self._run(self._fetch)

    async def update(self, **changes):
        async def action():
            ticket = await self.app.rpc.mutate("updateTicket", {"ticket_id": self.ticket_id, **changes})
            await self._fetch()
            return ticket
        return await self._run(action)

    async def add_comment(self, comment: str):
        async def action():
            form = CommentForm(comment=comment)
            created = await self.app.rpc.mutate("createTicketComment", {
                "ticket_id": self.ticket_id,
                "comment": form.comment,
            })
            await self._fetch()
            return created
        return await self._run(action)


SCREENS = {
    "login": LoginScreen,
    "register": RegisterScreen,
    "organizations": OrganizationsScreen,
    "profile": ProfileScreen,
    "create_profile": CreateProfileScreen,
    "tickets": TicketsScreen,
    "ticket": TicketScreen,
    "organization_profile": ProfileScreen,
}


def screen_for(app: AppContext, match: RouteMatch) -> Screen:
    screen_cls = SCREENS[match.view]
    if screen_cls is LoginScreen:
        return LoginScreen(app, redirect_from=match.redirect_from)
    return screen_cls(app, **match.params)
