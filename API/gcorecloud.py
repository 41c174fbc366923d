#!/usr/bin/python3
"""
Small helper SDK for the Gcore Cloud REST API.

Covers the pieces the `gcorecloud` CLI needs: configuration and authentication, a shared
`ServiceClient` with retry/backoff, link-following pagination, async task tracking, floating IPs
and GPU images (baremetal and virtual clusters).

Every request builder takes an explicitly constructed `ServiceClient`; there is no module-level
client state.

Example:
    >>> import gcorecloud
    >>> cfg = gcorecloud.ClientConfig.from_env()
    >>> auth = gcorecloud.Authenticator(cfg)
    >>> fips = gcorecloud.new_service_client(cfg, "floatingips", "v1", auth=auth)
    >>> gcorecloud.list_all_floating_ips(fips)
"""
import dataclasses
import email.utils
import ipaddress
import logging
import math
import os
import re
import sys
import time
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone

import jwt
import requests
from dotenv import find_dotenv, load_dotenv

_VERSION = "0.1.0"

DEFAULT_API_URL = "https://api.gcore.com/cloud"
DEFAULT_AUTH_URL = "https://api.gcore.com"
DEFAULT_HTTP_TIMEOUT = (10.0, 60.0)
DEFAULT_MAX_RETRY = 5
DEFAULT_BACKOFF_MAX_S = 30.0

CLIENT_TYPES = ("api-token", "platform", "token")
TASK_STATE_FINISHED = "FINISHED"
TASK_STATE_ERROR = "ERROR"
TASK_TERMINAL_STATES = {TASK_STATE_FINISHED, TASK_STATE_ERROR}

GPU_CLUSTER_FLAVORS = ("baremetal", "virtual")
SSH_KEY_TYPES = ("allow", "deny", "required")
OS_TYPES = ("linux", "windows")
ARCHITECTURES = ("aarch64", "x86_64")
HW_FIRMWARE_TYPES = ("bios", "uefi")

_RETRY_ON_STATUSES = (408, 425, 429, 500, 502, 503, 504)
_TOKEN_REFRESH_MARGIN_S = 30

_REDACTED = "[REDACTED]"
_AUTH_SCHEME_RE = re.compile(r"(?i)\b(bearer|apikey)\s+[^\s\"',]+")
_SECRET_FIELD_RE = re.compile(
    r"(?i)(\"?\b(?:access_token|refresh_token|api_token|client_secret|password|access|refresh)"
    r"\"?\s*[:=]\s*\"?)([^\"&\s,}]+)"
)
_SECRET_QUERY_RE = re.compile(r"(?i)([?&](?:sig|signature|token|x-amz-signature)=)[^&\s\"]+")

logger = logging.getLogger("gcorecloud")


class GcoreCloudError(Exception):
    """Base class for every error raised by this helper."""


class ValidationError(GcoreCloudError, ValueError):
    """Client-side input was rejected before any request was sent."""


class ConfigurationError(GcoreCloudError):
    """Credentials, project or region are missing or malformed."""


class ApiRequestError(GcoreCloudError):
    def __init__(self, message, *, status_code=None, text="", url=""):
        super().__init__(message)
        self.status_code = status_code
        self.text = text
        self.url = url


class NotFoundError(ApiRequestError):
    pass


class TaskFailedError(GcoreCloudError):
    """The server reported the task in the ERROR state."""

    def __init__(self, task):
        self.task = task
        self.task_id = task.id
        self.error_text = task.error or "unknown error"
        super().__init__(f"task {task.id} failed: {self.error_text}")


class TaskTimeoutError(GcoreCloudError, TimeoutError):
    """No terminal state was observed before the wait bound elapsed."""

    def __init__(self, task_id: str, timeout_s: float, last_state: str = ""):
        self.task_id = task_id
        self.timeout_s = timeout_s
        self.last_state = last_state
        super().__init__(
            f"timed out waiting for task {task_id} after {timeout_s}s "
            f"(last state={last_state or 'unknown'})"
        )


def redact_sensitive_text(text) -> str:
    """Mask credentials (auth headers, token/password fields, signed query params)."""
    cooked = str(text or "")
    cooked = _AUTH_SCHEME_RE.sub(lambda m: f"{m.group(1)} {_REDACTED}", cooked)
    cooked = _SECRET_FIELD_RE.sub(lambda m: f"{m.group(1)}{_REDACTED}", cooked)
    cooked = _SECRET_QUERY_RE.sub(lambda m: f"{m.group(1)}{_REDACTED}", cooked)
    return cooked


def configure_logging(level="INFO") -> None:
    lvl = getattr(logging, str(level or "").strip().upper(), None)
    if not isinstance(lvl, int):
        raise ValidationError(f"invalid log level: {level!r}")
    logger.setLevel(lvl)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


def _parse_retry_after_seconds(value, *, now: datetime | None = None) -> int | None:
    """
    Parse a `Retry-After` header as either delay-seconds or an HTTP-date.

    Returns None when the header is absent or unparseable; dates in the past map to 0.
    """
    raw = str(value or "").strip()
    if not raw:
        return None
    if raw.isdigit():
        return int(raw)
    try:
        when = email.utils.parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(int(math.ceil((when - now).total_seconds())), 0)


def _json_body(response):
    try:
        return response.json()
    except ValueError:
        return {}


def parse_metadata(values) -> dict[str, str]:
    """
    Turn repeated `key=value` flags into a mapping.

    Splits on the first `=`; later duplicates win.
    """
    out: dict[str, str] = {}
    for raw in values or []:
        key, sep, value = str(raw).partition("=")
        if not sep:
            raise ValidationError(f"invalid metadata format: {raw!r} (expected key=value)")
        out[key] = value
    return out


# ---------------------------------------------------------------------------------------------
# configuration / auth
# ---------------------------------------------------------------------------------------------


def load_env_file() -> str:
    """
    Load the nearest `.env` (searching parents of the CWD) without overriding the environment.

    Returns the path that was loaded, or "" when none was found.
    """
    path = find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)
    return path


def _env_int(name: str) -> int | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class ClientConfig:
    """
    Connection settings shared by every service client of one CLI invocation.

    Build it with `ClientConfig.from_env()` to pick up `GCLOUD_*` variables (and `.env`), or
    construct it directly in tests.
    """

    api_url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL
    project_id: int | None = None
    region_id: int | None = None
    client_type: str = ""
    api_token: str = ""
    username: str = ""
    password: str = ""
    access_token: str = ""
    refresh_token: str = ""
    http_timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT
    retry: bool = True
    max_retry: int = DEFAULT_MAX_RETRY
    backoff_max_s: float = DEFAULT_BACKOFF_MAX_S

    @classmethod
    def from_env(cls, *, load_env: bool = True, **overrides) -> "ClientConfig":
        if load_env:
            load_env_file()
        cfg = cls(
            api_url=os.getenv("GCLOUD_API_URL") or DEFAULT_API_URL,
            auth_url=os.getenv("GCLOUD_AUTH_URL") or DEFAULT_AUTH_URL,
            project_id=_env_int("GCLOUD_PROJECT"),
            region_id=_env_int("GCLOUD_REGION"),
            client_type=(os.getenv("GCLOUD_CLIENT_TYPE") or "").strip().lower(),
            api_token=os.getenv("GCLOUD_API_TOKEN") or "",
            username=os.getenv("GCLOUD_USERNAME") or "",
            password=os.getenv("GCLOUD_PASSWORD") or "",
            access_token=os.getenv("GCLOUD_ACCESS_TOKEN") or "",
            refresh_token=os.getenv("GCLOUD_REFRESH_TOKEN") or "",
        )
        for key, value in overrides.items():
            if not hasattr(cfg, key):
                raise TypeError(f"unknown ClientConfig field: {key}")
            if value is not None:
                setattr(cfg, key, value)
        return cfg

    def resolved_client_type(self) -> str:
        if self.client_type:
            if self.client_type not in CLIENT_TYPES:
                raise ConfigurationError(
                    f"unsupported client type {self.client_type!r} "
                    f"(expected one of: {', '.join(CLIENT_TYPES)})"
                )
            return self.client_type
        if self.api_token:
            return "api-token"
        if self.access_token:
            return "token"
        if self.username and self.password:
            return "platform"
        raise ConfigurationError(
            "no credentials configured: set GCLOUD_API_TOKEN, GCLOUD_USERNAME/GCLOUD_PASSWORD "
            "or GCLOUD_ACCESS_TOKEN/GCLOUD_REFRESH_TOKEN"
        )

    def require_scope(self) -> tuple[int, int]:
        missing = []
        if self.project_id is None:
            missing.append("project (GCLOUD_PROJECT / --project)")
        if self.region_id is None:
            missing.append("region (GCLOUD_REGION / --region)")
        if missing:
            raise ConfigurationError("missing " + ", ".join(missing))
        return self.project_id, self.region_id


class Authenticator:
    """
    Produces `Authorization` headers for the configured client type.

    `api-token` sends a static `APIKey` header. `platform` logs in with username/password and
    `token` starts from a given access/refresh pair; both refresh the JWT shortly before it
    expires and after a 401.
    """

    def __init__(self, config: ClientConfig, *, session=None):
        self._config = config
        self._session = session
        self._client_type = config.resolved_client_type()
        self._access_token = config.access_token
        self._refresh_token = config.refresh_token
        if self._client_type == "api-token" and not config.api_token:
            raise ConfigurationError("client type api-token requires GCLOUD_API_TOKEN")
        if self._client_type == "platform" and not (config.username and config.password):
            raise ConfigurationError("client type platform requires GCLOUD_USERNAME/GCLOUD_PASSWORD")
        if self._client_type == "token" and not (self._access_token or self._refresh_token):
            raise ConfigurationError("client type token requires GCLOUD_ACCESS_TOKEN")

    @property
    def client_type(self) -> str:
        return self._client_type

    def can_refresh(self) -> bool:
        return self._client_type in ("platform", "token")

    def headers(self) -> dict:
        if self._client_type == "api-token":
            return {"Authorization": f"APIKey {self._config.api_token}"}
        return {"Authorization": f"Bearer {self.__bearer_token__()}"}

    def refresh(self) -> None:
        self.__bearer_token__(force=True)

    def __token_expiry__(self, token: str) -> bool:
        """True when the JWT expires within the refresh margin. Opaque tokens never expire."""
        try:
            claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        except jwt.PyJWTError:
            return False
        exp = claims.get("exp")
        if exp is None:
            return False
        return (float(exp) - time.time()) < _TOKEN_REFRESH_MARGIN_S

    def __bearer_token__(self, force: bool = False) -> str:
        if not self._access_token:
            if self._refresh_token:
                self.__refresh__()
            else:
                self.__login__()
        elif force or self.__token_expiry__(self._access_token):
            self.__refresh__()
        return self._access_token

    def __login__(self) -> None:
        if self._client_type != "platform":
            raise ConfigurationError("access token expired and no credentials to log in again")
        logger.debug("logging in as %s", self._config.username)
        body = self.__auth_post__(
            "iam/auth/jwt/login",
            {"username": self._config.username, "password": self._config.password},
        )
        self.__store_tokens__(body)

    def __refresh__(self) -> None:
        if not self._refresh_token:
            self.__login__()
            return
        logger.debug("refreshing access token")
        try:
            body = self.__auth_post__("iam/auth/jwt/refresh", {"refresh": self._refresh_token})
        except ApiRequestError:
            if self._client_type != "platform":
                raise
            logger.info("token refresh rejected; logging in again")
            self.__login__()
            return
        self.__store_tokens__(body)

    def __store_tokens__(self, body) -> None:
        access = (body or {}).get("access") if isinstance(body, dict) else None
        if not access:
            raise ApiRequestError("auth response did not include an access token")
        self._access_token = str(access)
        self._refresh_token = str(body.get("refresh") or self._refresh_token)

    def __auth_post__(self, path: str, payload: dict):
        url = f"{self._config.auth_url.rstrip('/')}/{path}"
        request_fn = getattr(self._session, "request", None) if self._session is not None else None
        if not callable(request_fn):
            request_fn = requests.request
        r = request_fn(
            method="POST",
            url=url,
            json=payload,
            headers={"Accept": "application/json"},
            timeout=self._config.http_timeout,
        )
        if not r.ok:
            text = redact_sensitive_text(r.text)
            raise ApiRequestError(
                f"called by: auth -- last_status: {r.status_code} -- last_text: {text}",
                status_code=r.status_code,
                text=text,
                url=url,
            )
        return _json_body(r)


# ---------------------------------------------------------------------------------------------
# service client / pagination
# ---------------------------------------------------------------------------------------------


class ServiceClient:
    """
    HTTP handle for one REST resource family.

    `resource_base` is `{api_url}/{version}/{resource}/{project}/{region}/` for scoped resources
    and `{api_url}/{version}/{resource}/` otherwise.
    """

    def __init__(
        self,
        config: ClientConfig,
        resource: str,
        version: str,
        *,
        scoped: bool = True,
        auth: Authenticator | None = None,
        session=None,
    ):
        self._config = config
        self._auth = auth if auth is not None else Authenticator(config, session=session)
        self._session = session
        self._http_timeout = config.http_timeout
        self._retry = bool(config.retry)
        self._max_retry = max(int(config.max_retry or 1), 1)
        self._backoff_max_s = float(config.backoff_max_s)

        base = f"{config.api_url.rstrip('/')}/{version.strip('/')}/{resource.strip('/')}/"
        if scoped:
            project_id, region_id = config.require_scope()
            base += f"{project_id}/{region_id}/"
        self.resource_base = base

    def service_url(self, *parts) -> str:
        return self.resource_base + "/".join(str(p).strip("/") for p in parts)

    def get(self, url: str, *, caller: str = "get", params=None):
        return _json_body(self.__query_helper__(caller, method="get", url=url, params=params))

    def post(self, url: str, payload=None, *, caller: str = "post"):
        return _json_body(self.__query_helper__(caller, method="post", url=url, payload=payload))

    def delete(self, url: str, *, caller: str = "delete"):
        return _json_body(self.__query_helper__(caller, method="delete", url=url))

    def __backoff_seconds__(self, attempt: int, retry_after=None) -> float:
        delay = _parse_retry_after_seconds(retry_after)
        if delay is None:
            delay = 2 ** (attempt - 1)
        return min(delay, self._backoff_max_s)

    def __query_helper__(self, caller: str, *, method: str, url: str, params=None, payload=None):
        """
        Send one request with auth, retry/backoff and a single token refresh on 401.

        Retries retryable statuses and connection/timeout errors; everything else raises
        `ApiRequestError` (`NotFoundError` for 404) with a redacted body.
        """
        request_fn = getattr(self._session, "request", None) if self._session is not None else None
        if not callable(request_fn):
            request_fn = requests.request

        attempts = self._max_retry if self._retry else 1
        attempt = 0
        refreshed = False
        last_status = None
        last_text = ""
        while True:
            attempt += 1
            headers = {"Accept": "application/json"}
            headers.update(self._auth.headers())
            kwargs = {
                "method": method.upper(),
                "url": url,
                "headers": headers,
                "params": params,
                "timeout": self._http_timeout,
            }
            if payload is not None:
                kwargs["json"] = payload
            logger.debug("%s %s (%s, attempt %d/%d)", method.upper(), url, caller, attempt, attempts)
            try:
                r = request_fn(**kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_status = None
                last_text = str(e)
                if attempt < attempts:
                    sleep_s = self.__backoff_seconds__(attempt)
                    logger.info("%s: transport error (%s); retrying in %ss", caller, e, sleep_s)
                    time.sleep(sleep_s)
                    continue
                raise ApiRequestError(
                    f"called by: {caller} -- last_status: none -- "
                    f"last_text: {redact_sensitive_text(last_text)}",
                    url=url,
                ) from e

            if r.ok:
                return r

            last_status = r.status_code
            last_text = r.text
            if last_status == 401 and not refreshed and self._auth.can_refresh():
                refreshed = True
                attempt -= 1
                logger.info("%s: 401 from server; refreshing token", caller)
                self._auth.refresh()
                continue
            if last_status in _RETRY_ON_STATUSES and attempt < attempts:
                sleep_s = self.__backoff_seconds__(attempt, (r.headers or {}).get("Retry-After"))
                logger.info("%s: http %s; retrying in %ss", caller, last_status, sleep_s)
                time.sleep(sleep_s)
                continue
            break

        text = redact_sensitive_text(last_text)
        error_cls = NotFoundError if last_status == 404 else ApiRequestError
        raise error_cls(
            f"called by: {caller} -- last_status: {last_status} -- last_text: {text}",
            status_code=last_status,
            text=text,
            url=url,
        )


def new_service_client(
    config: ClientConfig, resource: str, version: str, *, auth=None, session=None
) -> ServiceClient:
    return ServiceClient(config, resource, version, auth=auth, session=session)


def new_task_client(config: ClientConfig, *, auth=None, session=None) -> ServiceClient:
    return ServiceClient(config, "tasks", "v1", scoped=False, auth=auth, session=session)


def new_gpu_image_client(
    config: ClientConfig, flavor: str, *, auth=None, session=None
) -> ServiceClient:
    if flavor not in GPU_CLUSTER_FLAVORS:
        raise ValidationError(f"unsupported GPU cluster flavor: {flavor!r}")
    return ServiceClient(config, f"gpu/{flavor}", "v3", auth=auth, session=session)


class Pager:
    """
    Lazily walks a listing by following `links.next` in each page body.

    Every call to `pages()` restarts from the first URL.
    """

    def __init__(self, client: ServiceClient, url: str, extract, *, params=None, caller="list"):
        self._client = client
        self._url = url
        self._extract = extract
        self._params = params
        self._caller = caller

    def pages(self):
        url = self._url
        params = self._params
        seen: set[str] = set()
        while url:
            seen.add(url)
            body = self._client.get(url, caller=self._caller, params=params)
            yield body
            links = body.get("links") if isinstance(body, dict) else None
            nxt = links.get("next") if isinstance(links, dict) else None
            if not nxt:
                return
            url = urllib.parse.urljoin(self._url, str(nxt))
            # Filters the next link does not repeat still apply to it.
            given = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)
            params = {k: v for k, v in (self._params or {}).items() if k not in given} or None
            if url in seen:
                logger.warning("%s: pagination loop detected at %s; stopping", self._caller, url)
                return

    def all_items(self) -> list:
        items = []
        for page in self.pages():
            items.extend(self._extract(page))
        return items


def _page_results(page) -> list:
    results = page.get("results") if isinstance(page, dict) else None
    return results if isinstance(results, list) else []


# ---------------------------------------------------------------------------------------------
# typed results
# ---------------------------------------------------------------------------------------------


class _Model:
    @classmethod
    def from_dict(cls, payload):
        if not isinstance(payload, dict):
            raise ApiRequestError(f"unexpected {cls.__name__} payload: {payload!r}")
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in payload.items() if k in names})

    def as_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass
class TaskResults(_Model):
    tasks: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload):
        if isinstance(payload, dict) and isinstance(payload.get("tasks"), list):
            return cls(tasks=[str(t) for t in payload["tasks"]])
        if isinstance(payload, dict) and payload.get("id"):
            return cls(tasks=[str(payload["id"])])
        raise ApiRequestError(f"response did not include task ids: {payload!r}")


@dataclass
class Task(_Model):
    id: str = ""
    state: str = ""
    task_type: str = ""
    error: str | None = None
    created_resources: dict | None = None
    created_on: str | None = None
    finished_on: str | None = None
    project_id: int | None = None
    region_id: int | None = None
    user_id: int | None = None
    request_id: str | None = None

    @property
    def normalized_state(self) -> str:
        return str(self.state or "").strip().upper()

    def is_terminal(self) -> bool:
        return self.normalized_state in TASK_TERMINAL_STATES


@dataclass
class FloatingIP(_Model):
    id: str = ""
    status: str = ""
    floating_ip_address: str | None = None
    fixed_ip_address: str | None = None
    port_id: str | None = None
    router_id: str | None = None
    project_id: int | None = None
    region_id: int | None = None
    region: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    creator_task_id: str | None = None
    task_id: str | None = None
    metadata: list | dict | None = None


@dataclass
class GPUImage(_Model):
    id: str = ""
    name: str = ""
    status: str = ""
    size: int | None = None
    min_disk: int | None = None
    min_ram: int | None = None
    architecture: str | None = None
    os_distro: str | None = None
    os_type: str | None = None
    os_version: str | None = None
    ssh_key: str | None = None
    hw_firmware_type: str | None = None
    visibility: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    region_id: int | None = None
    region: str | None = None
    project_id: int | None = None
    task_id: str | None = None
    metadata: list | dict | None = None


def _created_resource_id(task: Task, kind: str) -> str:
    ids = (task.created_resources or {}).get(kind) or []
    if not ids:
        raise GcoreCloudError(f"task {task.id} did not report any created {kind}")
    return str(ids[0])


# ---------------------------------------------------------------------------------------------
# tasks
# ---------------------------------------------------------------------------------------------


def get_task(client: ServiceClient, task_id: str) -> Task:
    return Task.from_dict(client.get(client.service_url(task_id), caller="get_task"))


def list_tasks(client: ServiceClient, project_id: int, region_id: int, *, state=None) -> list[Task]:
    params = {"project_id": project_id, "region_id": region_id}
    if state:
        params["state"] = state
    pager = Pager(
        client,
        client.resource_base.rstrip("/"),
        lambda page: [Task.from_dict(t) for t in _page_results(page)],
        params=params,
        caller="list_tasks",
    )
    return pager.all_items()


def wait_for_task(
    client: ServiceClient,
    task_id: str,
    *,
    poll_interval_s: float = 1.0,
    timeout_s: float = 3600.0,
) -> Task:
    """
    Poll `tasks/{id}` until FINISHED (returned) or ERROR (`TaskFailedError`).

    Raises `TaskTimeoutError` when no terminal state is seen within `timeout_s`.
    """
    if timeout_s <= 0:
        raise ValidationError("timeout_s must be > 0")
    started = time.monotonic()
    task = get_task(client, task_id)
    while True:
        state = task.normalized_state
        logger.debug("task %s state=%s", task_id, state or "unknown")
        if state == TASK_STATE_FINISHED:
            return task
        if state == TASK_STATE_ERROR:
            raise TaskFailedError(task)
        if (time.monotonic() - started) >= timeout_s:
            raise TaskTimeoutError(task_id, timeout_s, last_state=state)
        time.sleep(max(poll_interval_s, 0.1))
        task = get_task(client, task_id)


# ---------------------------------------------------------------------------------------------
# floating IPs
# ---------------------------------------------------------------------------------------------


@dataclass
class CreateFloatingIPOpts:
    port_id: str = ""
    fixed_ip_address: str = ""

    def to_request_body(self) -> dict:
        port_id = str(self.port_id or "").strip()
        raw_ip = str(self.fixed_ip_address or "").strip()
        if not port_id:
            raise ValidationError("missing required field: port_id")
        if not raw_ip:
            raise ValidationError("missing required field: fixed_ip_address")
        try:
            fixed_ip = ipaddress.ip_address(raw_ip)
        except ValueError as e:
            raise ValidationError(f"invalid fixed_ip_address: {raw_ip!r}") from e
        return {"port_id": port_id, "fixed_ip_address": str(fixed_ip)}


def list_floating_ips(client: ServiceClient) -> Pager:
    return Pager(
        client,
        client.resource_base,
        lambda page: [FloatingIP.from_dict(item) for item in _page_results(page)],
        caller="list_floating_ips",
    )


def list_all_floating_ips(client: ServiceClient) -> list[FloatingIP]:
    return list_floating_ips(client).all_items()


def get_floating_ip(client: ServiceClient, floating_ip_id: str) -> FloatingIP:
    body = client.get(client.service_url(floating_ip_id), caller="get_floating_ip")
    return FloatingIP.from_dict(body)


def create_floating_ip(client: ServiceClient, opts: CreateFloatingIPOpts) -> TaskResults:
    body = opts.to_request_body()
    return TaskResults.from_dict(client.post(client.resource_base, body, caller="create_floating_ip"))


def delete_floating_ip(client: ServiceClient, floating_ip_id: str) -> TaskResults:
    body = client.delete(client.service_url(floating_ip_id), caller="delete_floating_ip")
    return TaskResults.from_dict(body)


def assign_floating_ip(
    client: ServiceClient, floating_ip_id: str, opts: CreateFloatingIPOpts
) -> FloatingIP:
    body = opts.to_request_body()
    url = client.service_url(floating_ip_id, "assign")
    return FloatingIP.from_dict(client.post(url, body, caller="assign_floating_ip"))


def unassign_floating_ip(client: ServiceClient, floating_ip_id: str) -> FloatingIP:
    url = client.service_url(floating_ip_id, "unassign")
    return FloatingIP.from_dict(client.post(url, caller="unassign_floating_ip"))


def extract_floating_ip_id_from_task(task: Task) -> str:
    return _created_resource_id(task, "floatingips")


# ---------------------------------------------------------------------------------------------
# GPU images
# ---------------------------------------------------------------------------------------------


def _optional_choice(name: str, value, choices) -> str | None:
    cooked = str(value or "").strip()
    if not cooked:
        return None
    if cooked not in choices:
        raise ValidationError(f"invalid {name}: {cooked!r} (expected one of: {', '.join(choices)})")
    return cooked


@dataclass
class UploadGPUImageOpts:
    url: str = ""
    name: str = ""
    ssh_key: str | None = None
    cow_format: bool = False
    architecture: str | None = None
    os_distro: str | None = None
    os_type: str | None = None
    os_version: str | None = None
    hw_firmware_type: str | None = None
    metadata: dict[str, str] | None = None

    def to_request_body(self) -> dict:
        url = str(self.url or "").strip()
        name = str(self.name or "").strip()
        if not url:
            raise ValidationError("missing required field: url")
        if not name:
            raise ValidationError("missing required field: name")

        body = {
            "url": url,
            "name": name,
            "cow_format": bool(self.cow_format),
            "ssh_key": _optional_choice("ssh_key", self.ssh_key, SSH_KEY_TYPES),
            "architecture": _optional_choice("architecture", self.architecture, ARCHITECTURES),
            "os_type": _optional_choice("os_type", self.os_type, OS_TYPES),
            "hw_firmware_type": _optional_choice(
                "hw_firmware_type", self.hw_firmware_type, HW_FIRMWARE_TYPES
            ),
            "os_distro": str(self.os_distro or "").strip() or None,
            "os_version": str(self.os_version or "").strip() or None,
        }
        if self.metadata:
            body["metadata"] = {str(k): str(v) for k, v in self.metadata.items()}
        return {k: v for k, v in body.items() if v is not None}


def upload_gpu_image(client: ServiceClient, opts: UploadGPUImageOpts) -> TaskResults:
    body = opts.to_request_body()
    url = client.service_url("images")
    return TaskResults.from_dict(client.post(url, body, caller="upload_gpu_image"))


def list_gpu_images(client: ServiceClient) -> list[GPUImage]:
    pager = Pager(
        client,
        client.service_url("images"),
        lambda page: [GPUImage.from_dict(item) for item in _page_results(page)],
        caller="list_gpu_images",
    )
    return pager.all_items()


def get_gpu_image(client: ServiceClient, image_id: str) -> GPUImage:
    body = client.get(client.service_url("images", image_id), caller="get_gpu_image")
    return GPUImage.from_dict(body)


def delete_gpu_image(client: ServiceClient, image_id: str) -> TaskResults:
    body = client.delete(client.service_url("images", image_id), caller="delete_gpu_image")
    return TaskResults.from_dict(body)


def extract_image_id_from_task(task: Task) -> str:
    return _created_resource_id(task, "images")
