from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

ASYNC_DRIVER = "postgresql+psycopg"
_POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}
_SSLMODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}


def _sslmode_from_flag(flag: str) -> str:
    flag = flag.strip().lower()
    if flag in _SSLMODES:
        return flag
    if flag in {"0", "false", "no", "off"}:
        return "disable"
    return "require"


def normalize_database_url(url: str) -> str:
    """Rewrite hosted-Postgres URLs for the async psycopg driver.

    Managed providers hand out ``postgres://`` URLs with an ``ssl=true`` flag;
    psycopg wants the ``postgresql+psycopg`` scheme and ``sslmode`` instead.
    An explicit ``sslmode`` is never overridden.
    """
    url = (url or "").strip()
    if not url:
        return url

    scheme, netloc, path, raw_query, fragment = urlsplit(url)
    if scheme in _POSTGRES_SCHEMES:
        scheme = ASYNC_DRIVER

    params = []
    has_sslmode = False
    ssl_flag = None
    for key, value in parse_qsl(raw_query, keep_blank_values=True):
        if key.lower() == "ssl":
            ssl_flag = value
            continue
        has_sslmode = has_sslmode or key == "sslmode"
        params.append((key, value))
    if ssl_flag is not None and not has_sslmode:
        params.append(("sslmode", _sslmode_from_flag(ssl_flag)))

    return urlunsplit((scheme, netloc, path, urlencode(params), fragment))
