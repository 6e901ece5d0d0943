import json
import unittest
from datetime import datetime, timezone

import httpx

from flagsync.auth import ApiCredentials
from flagsync.controller import OptimizelyController, build_consistency_validation
from flagsync.controller.optimizely_controller import _flag_dict_to_flag, _RateLimiter
from flagsync.errors import (
    ApiError,
    InvalidArgumentError,
    NetworkError,
    NotFoundError,
    RateLimitError,
)
from flagsync.models import EnvironmentState

CREDS = ApiCredentials(token="tok_1234567890", project_id="42")
PREFIX = "/v2/flags/v1/projects/42"


class TestControllerHelpers(unittest.TestCase):
    def test_flag_dict_to_flag_parses_environments_and_time(self) -> None:
        flag = _flag_dict_to_flag(
            {
                "key": "checkout",
                "name": "Checkout",
                "archived": True,
                "updated_time": "2025-01-01T00:00:00Z",
                "environments": {
                    "production": {"enabled": True, "rolloutRules": [{"id": 1}], "priority": 1},
                    "development": {"enabled": False, "status": "draft"},
                },
            }
        )
        self.assertEqual(flag.key, "checkout")
        self.assertTrue(flag.archived)
        self.assertEqual(flag.updated_time, datetime(2025, 1, 1, tzinfo=timezone.utc))
        self.assertEqual(flag.enabled_environments(), ["production"])
        self.assertEqual(flag.targeted_environments(), ["production"])
        self.assertEqual(flag.environments["production"].priority, 1)
        self.assertEqual(flag.environments["development"].status, "draft")

    def test_flag_dict_without_key_is_api_error(self) -> None:
        with self.assertRaises(ApiError):
            _flag_dict_to_flag({"name": "x"})

    def test_bad_time_is_ignored(self) -> None:
        self.assertIsNone(_flag_dict_to_flag({"key": "a", "updated_time": "soon"}).updated_time)

    def test_build_consistency_validation_detects_mixed_state(self) -> None:
        result = build_consistency_validation(
            "a",
            {
                "production": EnvironmentState("production", enabled=True, status="running"),
                "development": EnvironmentState("development", status="draft"),
            },
        )
        self.assertFalse(result.is_consistent)
        self.assertEqual(
            [i["type"] for i in result.inconsistencies], ["mixed_enabled_status", "mixed_status"]
        )
        self.assertEqual(result.summary["enabled_environments"], 1)
        self.assertEqual(result.summary["total_environments"], 2)

    def test_rate_limiter_spaces_requests(self) -> None:
        now = [100.0]
        sleeps: list[float] = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            now[0] += seconds

        limiter = _RateLimiter(4, clock=lambda: now[0], sleep=sleep)
        limiter.acquire()
        limiter.acquire()
        now[0] += 1.0
        limiter.acquire()

        self.assertEqual(sleeps, [0.25])


class TestOptimizelyControllerMocked(unittest.TestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list] = {}

    def _route(self, method: str, path: str, *responses) -> None:
        self.routes[(method, PREFIX + path)] = list(responses)

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "no route"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        status, body = response
        return httpx.Response(status, json=body)

    def _controller(self, max_retries: int = 2) -> OptimizelyController:
        client = httpx.Client(
            base_url="https://api.test/v2",
            transport=httpx.MockTransport(self._handler),
            headers=CREDS.authorization_header,
        )
        controller = OptimizelyController.from_client(client, CREDS, max_retries=max_retries)
        self.addCleanup(controller.close)
        return controller

    def test_list_flags_follows_pages(self) -> None:
        def page(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json={"items": [{"key": "b"}], "total_pages": 2})
            return httpx.Response(200, json={"items": [{"key": "a"}], "total_pages": 2})

        self._route("GET", "/flags", page)

        res = self._controller().list_flags()

        self.assertTrue(res.is_ok)
        self.assertEqual([f.key for f in res.data], ["a", "b"])
        self.assertEqual(len(self.requests), 2)
        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer tok_1234567890")

    def test_get_flag_404_is_not_found_without_retry(self) -> None:
        self._route("GET", "/flags/missing", (404, {"message": "Flag not found"}))

        res = self._controller().get_flag("missing")

        self.assertIsInstance(res.error, NotFoundError)
        self.assertEqual(res.error.message, "Flag not found")
        self.assertEqual(res.error.details["status_code"], 404)
        self.assertEqual(len(self.requests), 1)

    def test_server_errors_are_retried(self) -> None:
        self._route(
            "GET",
            "/flags/a",
            (503, {"error": {"message": "busy"}}),
            (200, {"key": "a", "archived": False}),
        )

        res = self._controller().get_flag("a")

        self.assertTrue(res.is_ok)
        self.assertEqual(res.data.key, "a")
        self.assertEqual(len(self.requests), 2)

    def test_rate_limit_exhausts_retries(self) -> None:
        self._route("GET", "/flags/a", (429, {"message": "slow down"}))

        res = self._controller(max_retries=2).get_flag("a")

        self.assertIsInstance(res.error, RateLimitError)
        self.assertEqual(len(self.requests), 3)

    def test_network_error_is_mapped(self) -> None:
        self._route("GET", "/flags/a", httpx.ConnectError("refused"))

        res = self._controller(max_retries=0).get_flag("a")

        self.assertIsInstance(res.error, NetworkError)

    def test_invalid_json_is_api_error(self) -> None:
        self._route("GET", "/flags/a", lambda request: httpx.Response(200, content=b"<html>"))

        res = self._controller().get_flag("a")

        self.assertIsInstance(res.error, ApiError)

    def test_archive_posts_keys_and_returns_updated_flags(self) -> None:
        self._route("POST", "/flags/archived", (200, {"a": {"archived": True}, "b": "ignored"}))

        res = self._controller().archive(["a", "b"])

        self.assertTrue(res.is_ok)
        self.assertEqual(list(res.data), ["a"])
        self.assertTrue(res.data["a"].archived)
        self.assertEqual(json.loads(self.requests[0].content), {"keys": ["a", "b"]})

    def test_unarchive_uses_unarchived_endpoint(self) -> None:
        self._route("POST", "/flags/unarchived", (200, {"a": {"archived": False}}))

        res = self._controller().unarchive(["a"])

        self.assertFalse(res.data["a"].archived)

    def test_archive_requires_keys(self) -> None:
        res = self._controller().archive([])

        self.assertIsInstance(res.error, InvalidArgumentError)
        self.assertEqual(self.requests, [])

    def test_enable_posts_ruleset_per_environment(self) -> None:
        self._route(
            "GET", "/environments", (200, {"items": [{"key": "production"}, {"key": "dev"}]})
        )
        self._route("POST", "/flags/a/environments/production/ruleset/enabled", (200, {}))
        self._route("POST", "/flags/a/environments/dev/ruleset/enabled", (200, {}))
        self._route(
            "GET",
            "/flags/a",
            (200, {"key": "a", "environments": {"production": {"enabled": True}}}),
        )

        res = self._controller().enable("a")

        self.assertTrue(res.is_ok)
        self.assertTrue(res.data.is_enabled_anywhere)
        posted = [r.url.path for r in self.requests if r.method == "POST"]
        self.assertEqual(
            posted,
            [
                PREFIX + "/flags/a/environments/production/ruleset/enabled",
                PREFIX + "/flags/a/environments/dev/ruleset/enabled",
            ],
        )

    def test_validate_consistency_tolerates_partial_failures(self) -> None:
        self._route(
            "GET",
            "/environments",
            (200, {"items": [{"key": "production"}, {"key": "staging"}, {"key": "dev"}]}),
        )
        self._route("GET", "/flags/a/environments/production", (200, {"enabled": True}))
        self._route("GET", "/flags/a/environments/dev", (200, {"enabled": False}))

        res = self._controller(max_retries=0).validate_consistency("a")

        self.assertTrue(res.is_ok)
        self.assertEqual(set(res.data.environments), {"production", "dev"})
        self.assertTrue(res.data.any_enabled)
        self.assertFalse(res.data.is_consistent)

    def test_validate_consistency_without_any_environment_data(self) -> None:
        self._route("GET", "/environments", (200, {"items": [{"key": "production"}]}))

        res = self._controller(max_retries=0).validate_consistency("a")

        self.assertIsInstance(res.error, NotFoundError)

    def test_blank_flag_key_is_rejected_locally(self) -> None:
        res = self._controller().get_flag(" ")

        self.assertIsInstance(res.error, InvalidArgumentError)
        self.assertEqual(self.requests, [])


if __name__ == "__main__":
    unittest.main()
