"""Optimizely Feature Experimentation REST controller (internal use only)."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, TypeVar
from urllib.parse import quote

import httpx
import structlog

from flagsync.auth import ApiCredentials
from flagsync.errors import (
    ApiError,
    FlagSyncError,
    HttpErrorInfo,
    InvalidArgumentError,
    NetworkError,
    NotFoundError,
    is_retryable,
    map_http_error,
)
from flagsync.models import EnvironmentState, Flag, FlagConsistencyValidation, Result
from flagsync.util.time import parse_rfc3339

logger = structlog.get_logger(__name__)

T = TypeVar("T")

USER_AGENT = "flagsync/0.1"


@dataclass(frozen=True)
class _RetryPolicy:
    max_retries: int = 3
    initial_delay_sec: float = 1.0


class _RateLimiter:
    """Minimum interval between requests, shared by all threads."""

    def __init__(
        self,
        max_rps: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = 1.0 / max(1.0, float(max_rps))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last is not None:
                wait = self._interval - (now - self._last)
                if wait > 0:
                    logger.debug("rate_limit_delay", delay_ms=int(wait * 1000))
                    self._sleep(wait)
                    now = self._clock()
            self._last = now


class OptimizelyController:
    """
    Flag service controller implementing the FlagSource protocol.

    Notes:
        - The underlying httpx.Client is NOT exposed.
        - Every public method returns a Result; remote failures never raise.
        - Retries with exponential backoff on 429, 5xx and network errors.
    """

    DEFAULT_BASE_URL = "https://api.optimizely.com/v2"
    MAX_PAGES = 100

    def __init__(
        self,
        credentials: ApiCredentials,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_rps: float = 5,
        timeout_sec: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        client = httpx.Client(
            base_url=base_url,
            timeout=max(1.0, timeout_sec),
            headers={
                **credentials.authorization_header,
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )
        self._init(client, credentials, max_rps, _RetryPolicy(max_retries=max(0, max_retries)))

    @classmethod
    def from_client(
        cls,
        client: httpx.Client,
        credentials: ApiCredentials,
        *,
        max_rps: float = 1000,
        max_retries: int = 3,
        initial_delay_sec: float = 0.0,
    ) -> "OptimizelyController":
        """Create controller from a pre-built httpx.Client (useful for tests)."""
        obj = cls.__new__(cls)
        obj._init(
            client,
            credentials,
            max_rps,
            _RetryPolicy(max_retries=max_retries, initial_delay_sec=initial_delay_sec),
        )
        return obj

    def _init(
        self,
        client: httpx.Client,
        credentials: ApiCredentials,
        max_rps: float,
        retry_policy: _RetryPolicy,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._retry_policy = retry_policy
        self._rate_limiter = _RateLimiter(max_rps)
        self._sleep: Callable[[float], None] = time.sleep

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OptimizelyController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ----------------------------
    # Public API (FlagSource)
    # ----------------------------
    def list_flags(self) -> Result[list[Flag]]:
        """Fetch every flag of the project, following page / total_pages."""
        return self._guard("list_flags", self._list_flags)

    def get_flag(self, flag_key: str) -> Result[Flag]:
        return self._guard("get_flag", lambda: self._get_flag(flag_key), flag_key=flag_key)

    def archive(self, flag_keys: Sequence[str]) -> Result[dict[str, Flag]]:
        return self._guard(
            "archive",
            lambda: self._bulk_archive_state("archived", flag_keys),
            flag_keys=list(flag_keys),
        )

    def unarchive(self, flag_keys: Sequence[str]) -> Result[dict[str, Flag]]:
        return self._guard(
            "unarchive",
            lambda: self._bulk_archive_state("unarchived", flag_keys),
            flag_keys=list(flag_keys),
        )

    def enable(self, flag_key: str) -> Result[Flag]:
        """Enable the flag's ruleset in every environment."""
        return self._guard(
            "enable",
            lambda: self._set_ruleset(flag_key, "enabled"),
            flag_key=flag_key,
        )

    def disable(self, flag_key: str) -> Result[Flag]:
        """Disable the flag's ruleset in every environment."""
        return self._guard(
            "disable",
            lambda: self._set_ruleset(flag_key, "disabled"),
            flag_key=flag_key,
        )

    def get_environments(self) -> Result[list[dict[str, Any]]]:
        return self._guard("get_environments", self._get_environments)

    def get_flag_status_in_environment(
        self,
        flag_key: str,
        environment_key: str,
    ) -> Result[EnvironmentState]:
        return self._guard(
            "get_flag_status_in_environment",
            lambda: self._get_env_status(flag_key, environment_key),
            flag_key=flag_key,
            environment_key=environment_key,
        )

    def validate_consistency(self, flag_key: str) -> Result[FlagConsistencyValidation]:
        """Live per-environment view of a flag plus cross-environment inconsistencies."""
        return self._guard(
            "validate_consistency",
            lambda: self._validate_consistency(flag_key),
            flag_key=flag_key,
        )

    # ----------------------------
    # Internals
    # ----------------------------
    def _guard(self, op: str, func: Callable[[], T], **context: Any) -> Result[T]:
        try:
            return Result.ok(func())
        except FlagSyncError as exc:
            logger.error(
                "flag_service_request_failed",
                operation=op,
                code=exc.code,
                error=exc.message,
                **context,
            )
            return Result.fail(exc)

    def _project_path(self, suffix: str = "") -> str:
        return f"/flags/v1/projects/{quote(self._credentials.project_id, safe='')}{suffix}"

    def _flag_path(self, flag_key: str, suffix: str = "") -> str:
        _require_key(flag_key)
        return self._project_path(f"/flags/{quote(flag_key, safe='')}{suffix}")

    def _list_flags(self) -> list[Flag]:
        flags: list[Flag] = []
        page = 1
        total_pages = 1
        while True:
            path = self._project_path("/flags")
            params = {"page": page} if page > 1 else None
            data = self._request("GET", path, params=params)
            items = data.get("items") or []
            flags.extend(_flag_dict_to_flag(item) for item in items if isinstance(item, dict))

            total_pages = _as_int(data.get("total_pages"), default=1)
            logger.debug(
                "flags_page_fetched",
                page=page,
                flags_on_page=len(items),
                total_pages=total_pages,
            )
            page += 1
            if page > total_pages:
                break
            if page > self.MAX_PAGES:
                logger.warning("flags_page_limit_reached", pages=self.MAX_PAGES, flags=len(flags))
                break

        logger.info("flags_fetched", flag_count=len(flags), page_count=page - 1)
        return flags

    def _get_flag(self, flag_key: str) -> Flag:
        data = self._request("GET", self._flag_path(flag_key))
        return _flag_dict_to_flag(data)

    def _bulk_archive_state(self, state: str, flag_keys: Sequence[str]) -> dict[str, Flag]:
        keys = list(flag_keys)
        if not keys:
            raise InvalidArgumentError("At least one flag key is required")
        for key in keys:
            _require_key(key)

        data = self._request("POST", self._project_path(f"/flags/{state}"), json={"keys": keys})
        updated = {
            key: _flag_dict_to_flag({"key": key, **value})
            for key, value in data.items()
            if isinstance(value, dict)
        }
        logger.info(
            "flags_archive_state_changed",
            state=state,
            requested=len(keys),
            changed=len(updated),
        )
        return updated

    def _set_ruleset(self, flag_key: str, state: str) -> Flag:
        environments = self._get_environments()
        for env in environments:
            env_key = env.get("key")
            if not isinstance(env_key, str) or not env_key:
                continue
            path = self._flag_path(
                flag_key,
                f"/environments/{quote(env_key, safe='')}/ruleset/{state}",
            )
            self._request("POST", path)
        return self._get_flag(flag_key)

    def _get_environments(self) -> list[dict[str, Any]]:
        data = self._request("GET", self._project_path("/environments"))
        items = data.get("items") or []
        return [item for item in items if isinstance(item, dict)]

    def _get_env_status(self, flag_key: str, environment_key: str) -> EnvironmentState:
        if not environment_key:
            raise InvalidArgumentError("Environment key is required")
        path = self._flag_path(flag_key, f"/environments/{quote(environment_key, safe='')}")
        data = self._request("GET", path)
        return _env_dict_to_state(environment_key, data)

    def _validate_consistency(self, flag_key: str) -> FlagConsistencyValidation:
        _require_key(flag_key)
        states: dict[str, EnvironmentState] = {}
        failures: list[str] = []
        for env in self._get_environments():
            env_key = env.get("key")
            if not isinstance(env_key, str) or not env_key:
                continue
            try:
                states[env_key] = self._get_env_status(flag_key, env_key)
            except FlagSyncError as exc:
                failures.append(f"{env_key}: {exc.message}")

        if failures:
            logger.warning("environment_status_partial", flag_key=flag_key, failures=failures)
        if not states:
            raise NotFoundError(
                f"No environment data found for flag {flag_key}",
                details={"flag_key": flag_key, "failures": failures},
            )

        return build_consistency_validation(flag_key, states)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> dict[str, Any]:
        return self._execute(lambda: self._send(method, path, params=params, json=json))

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]],
        json: Any,
    ) -> dict[str, Any]:
        self._rate_limiter.acquire()
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as exc:
            raise NetworkError("Request timed out", details={"path": path}, cause=exc) from exc
        except httpx.TransportError as exc:
            raise NetworkError("Network error", details={"path": path}, cause=exc) from exc

        if response.is_error:
            raise map_http_error(_response_to_info(response, path))

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError("Invalid JSON response", details={"path": path}, cause=exc) from exc
        if not isinstance(payload, dict):
            raise ApiError("Expected object response", details={"path": path})
        return payload

    def _execute(self, func: Callable[[], T]) -> T:
        delay = self._retry_policy.initial_delay_sec
        for attempt in range(self._retry_policy.max_retries + 1):
            try:
                return func()
            except FlagSyncError as exc:
                if is_retryable(exc) and attempt < self._retry_policy.max_retries:
                    logger.warning(
                        "flag_service_retry",
                        attempt=attempt + 1,
                        code=exc.code,
                        delay_sec=delay,
                    )
                    self._sleep(delay)
                    delay *= 2
                    continue
                raise

        raise ApiError("Unexpected retry loop termination")


def build_consistency_validation(
    flag_key: str,
    states: dict[str, EnvironmentState],
) -> FlagConsistencyValidation:
    """Summarize per-environment states and detect mixed enabled/status values."""
    env_keys = list(states)
    enabled = [states[k].enabled for k in env_keys]
    statuses = [states[k].status for k in env_keys]

    inconsistencies: list[dict[str, object]] = []
    if enabled and not (all(enabled) or not any(enabled)):
        inconsistencies.append(
            {
                "type": "mixed_enabled_status",
                "message": "Flag has mixed enabled/disabled status across environments",
                "affected_environments": [k for k in env_keys if states[k].enabled != enabled[0]],
            }
        )

    unique_statuses = list(dict.fromkeys(statuses))
    if len(unique_statuses) > 1:
        inconsistencies.append(
            {
                "type": "mixed_status",
                "message": "Flag has different statuses across environments: "
                + ", ".join(str(s) for s in unique_statuses),
                "affected_environments": env_keys,
            }
        )

    enabled_count = sum(1 for e in enabled if e)
    return FlagConsistencyValidation(
        flag_key=flag_key,
        is_consistent=not inconsistencies,
        environments=dict(states),
        inconsistencies=inconsistencies,
        summary={
            "total_environments": len(env_keys),
            "enabled_environments": enabled_count,
            "disabled_environments": len(env_keys) - enabled_count,
            "archived_environments": sum(1 for s in statuses if s == "archived"),
        },
    )


def _require_key(flag_key: str) -> None:
    if not isinstance(flag_key, str) or not flag_key.strip():
        raise InvalidArgumentError("Flag key is required and must be a non-empty string")


def _as_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return default


def _env_dict_to_state(env_key: str, data: dict[str, Any]) -> EnvironmentState:
    rules = data.get("rolloutRules") or data.get("rollout_rules") or data.get("rules") or []
    priority = data.get("priority")
    name = data.get("name")
    status = data.get("status")
    return EnvironmentState(
        key=str(data.get("key") or env_key),
        enabled=bool(data.get("enabled", False)),
        has_targeting_rules=bool(rules) if isinstance(rules, (list, dict)) else False,
        status=status if isinstance(status, str) else None,
        name=name if isinstance(name, str) else None,
        priority=priority if isinstance(priority, int) and not isinstance(priority, bool) else None,
    )


def _flag_dict_to_flag(data: dict[str, Any]) -> Flag:
    key = data.get("key")
    if not isinstance(key, str) or not key:
        raise ApiError("Flag payload has no key", details={"payload_keys": sorted(data)})

    environments: dict[str, EnvironmentState] = {}
    raw_envs = data.get("environments")
    if isinstance(raw_envs, dict):
        for env_key, env_data in raw_envs.items():
            if isinstance(env_data, dict):
                environments[env_key] = _env_dict_to_state(env_key, env_data)

    updated_time = None
    raw_time = data.get("updated_time") or data.get("updatedTime")
    if isinstance(raw_time, str):
        try:
            updated_time = parse_rfc3339(raw_time)
        except ValueError:
            updated_time = None

    name = data.get("name")
    description = data.get("description")
    url = data.get("url")
    return Flag(
        key=key,
        name=name if isinstance(name, str) else "",
        archived=bool(data.get("archived", False)),
        environments=environments,
        updated_time=updated_time,
        description=description if isinstance(description, str) else None,
        url=url if isinstance(url, str) else None,
    )


def _response_to_info(response: httpx.Response, path: str) -> HttpErrorInfo:
    message = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        if isinstance(payload.get("message"), str):
            message = payload["message"]
        elif isinstance(payload.get("error"), dict) and isinstance(
            payload["error"].get("message"), str
        ):
            message = payload["error"]["message"]

    if message is None:
        message = f"{response.status_code} {response.reason_phrase}".strip()

    return HttpErrorInfo(
        status_code=response.status_code,
        reason=response.reason_phrase or None,
        message=message,
        details={"path": path},
    )
