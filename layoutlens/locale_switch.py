# layoutlens/locale_switch.py
"""Per-locale request shaping: URL templating and the locale cookie."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from layoutlens.config import Behavior, CookieSpec

LOCAL_HOSTS = ("localhost", "127.0.0.1")


def build_url(base_url: str, behavior: Behavior, locale: str) -> str:
    """Apply ``behavior.url_template`` to ``base_url`` for one locale.

    ``{locale}`` and ``{pathname}`` are substituted once each. A template that
    starts with ``/`` replaces path, query and fragment; one that starts with
    ``?`` replaces the query only. Anything else leaves the URL untouched.
    """
    if not (behavior.use_url_template and behavior.url_template):
        return base_url

    parts = urlsplit(base_url)
    pathname = parts.path or "/"
    template = behavior.url_template.replace("{locale}", locale, 1).replace("{pathname}", pathname, 1)

    if template.startswith("/"):
        tpl = urlsplit(template)
        return urlunsplit((parts.scheme, parts.netloc, tpl.path, tpl.query, tpl.fragment))
    if template.startswith("?"):
        return urlunsplit((parts.scheme, parts.netloc, pathname, template[1:], parts.fragment))
    return base_url


def is_local_host(host: str) -> bool:
    return host in LOCAL_HOSTS


def build_locale_cookie(cookie: CookieSpec, base_url: str, locale: str) -> dict:
    host = urlsplit(base_url.strip()).hostname or "localhost"
    # engines drop SameSite=None cookies without Secure on non-local origins
    if cookie.same_site == "None":
        secure = not is_local_host(host)
    else:
        secure = bool(cookie.secure)
    return {
        "name": cookie.name,
        "value": locale,
        "domain": cookie.domain or host,
        "path": cookie.path if cookie.path is not None else "/",
        "sameSite": cookie.same_site,
        "secure": secure,
        "httpOnly": bool(cookie.http_only),
    }


def locale_headers(behavior: Behavior, locale: str) -> dict[str, str]:
    if behavior.send_accept_language:
        return {"Accept-Language": locale}
    return {}
