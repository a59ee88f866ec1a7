"""Auth cookie plans.

Learn: The session layer decides WHICH cookies to set or clear and for
how long; the HTTP layer applies them to a Starlette response. Keeping
the plan as plain data lets services be tested without a response.

    access_token   httponly   1 hour
    refresh_token  httponly   7 days (30 with remember-me)
    remember_me    readable   same as refresh_token

Secure + SameSite=None in production (cross-site frontend),
SameSite=Lax otherwise.
"""

from dataclasses import dataclass, field

from starlette.responses import Response

from qureka.config import Settings, settings

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
REMEMBER_COOKIE = "remember_me"
SESSION_COOKIES = (ACCESS_COOKIE, REFRESH_COOKIE, REMEMBER_COOKIE)


@dataclass(frozen=True)
class CookieSpec:
    name: str
    value: str
    max_age: int  # seconds
    httponly: bool = True


@dataclass
class CookiePlan:
    set: list[CookieSpec] = field(default_factory=list)
    clear: list[str] = field(default_factory=list)

    def get(self, name: str) -> CookieSpec | None:
        return next((c for c in self.set if c.name == name), None)


def access_cookie(access_token: str, max_age: int) -> CookieSpec:
    return CookieSpec(ACCESS_COOKIE, access_token, max_age)


def session_cookie_plan(
    access_token: str,
    refresh_token: str,
    remember_me: bool,
    access_max_age: int,
    refresh_max_age: int,
) -> CookiePlan:
    """Cookies to set after a successful login."""
    return CookiePlan(
        set=[
            access_cookie(access_token, access_max_age),
            CookieSpec(REFRESH_COOKIE, refresh_token, refresh_max_age),
            CookieSpec(
                REMEMBER_COOKIE,
                "true" if remember_me else "false",
                refresh_max_age,
                httponly=False,
            ),
        ]
    )


def clear_session_cookies() -> CookiePlan:
    return CookiePlan(clear=list(SESSION_COOKIES))


def apply_cookie_plan(
    response: Response, plan: CookiePlan, config: Settings = settings
) -> Response:
    """Write a cookie plan onto a response."""
    secure = config.is_production
    samesite = "none" if config.is_production else "lax"

    for cookie in plan.set:
        response.set_cookie(
            cookie.name,
            cookie.value,
            max_age=cookie.max_age,
            httponly=cookie.httponly,
            secure=secure,
            samesite=samesite,
            path="/",
        )
    for name in plan.clear:
        response.delete_cookie(
            name,
            path="/",
            secure=secure,
            httponly=name != REMEMBER_COOKIE,
            samesite=samesite,
        )
    return response
