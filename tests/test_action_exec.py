import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from graphql import print_ast

from action_exec import RestRequest, build_param_bag, execute_action, rename_variables
from app.manifest_normalize import normalize_action
from error_classifier import ErrorClassifier
from formatters import INTERNAL_SERVER_ERROR_FORMATTED
from operation_registry import OperationDocument, OperationRegistry


DOCS = {
    "Tweet": ("query", "query Tweet($id: ID!){\n    Tweet(id: $id){\n        id\n        body\n        date\n    }\n}"),
    "Tweets": ("query", "query Tweets($limit: Int){\n    Tweets(limit: $limit){\n        id\n        body\n    }\n}"),
    "createTweet": ("mutation", "mutation createTweet($tweetBody: String){\n    createTweet(tweetBody: $tweetBody){\n        id\n    }\n}"),
    "markTweetRead": ("mutation", "mutation markTweetRead($id: ID!){\n    markTweetRead(id: $id)\n}"),
    "Broken": ("query", "query Broken{"),
}

ERRORS = {"errorCodes": {"4003": {"httpCode": 403, "errorDescription": "Access denied"}}}


class ApolloStyleError(Exception):
    def __init__(self, result: dict) -> None:
        super().__init__("GraphQL error")
        self.result = result


class FakeExecutor:
    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list = []

    async def __call__(self, execution: dict):
        self.calls.append(execution)
        response = self.responses[execution["operation_name"]]
        if isinstance(response, BaseException):
            raise response
        return response


def _registry() -> OperationRegistry:
    docs = {name: OperationDocument(name, kind, text) for name, (kind, text) in DOCS.items()}
    return OperationRegistry(
        queries={n: d for n, d in docs.items() if d.kind == "query"},
        mutations={n: d for n, d in docs.items() if d.kind == "mutation"},
    )


def _request(body=None, query=None, params=None) -> RestRequest:
    return RestRequest(
        verb="POST",
        path="/api/v1/tweets",
        params=params or {},
        query=query or {},
        body=body if body is not None else {},
        headers={"authorization": "Bearer t"},
    )


class TestActionExec(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.hooks: dict = {}
        self.responses = {
            "Tweet": {"data": {"Tweet": {"id": "1", "body": "hello", "date": "2020-01-01"}}},
            "Tweets": {"data": {"Tweets": [{"id": "1", "body": "a"}, {"id": "2", "body": "b"}]}},
            "createTweet": {"data": {"createTweet": {"id": "99"}}},
            "markTweetRead": {"data": {"markTweetRead": True}},
            "Broken": {"data": {"Broken": 1}},
        }
        self.executor = FakeExecutor(self.responses)

    def _deps(self, **overrides) -> dict:
        deps = {
            "registry": _registry(),
            "executor": self.executor,
            "hooks": self.hooks,
            "classifier": ErrorClassifier(ERRORS),
            "filter_field_name": "fields",
            "route": "/api/v1/tweets",
        }
        deps.update(overrides)
        return deps

    async def _run(self, raw_action: dict, request: RestRequest, **overrides):
        action = normalize_action("post", "/tweets", raw_action)
        return await execute_action(action, request, self._deps(**overrides))

    async def test_success_flattens_data_and_hides_fields(self) -> None:
        status, body = await self._run({"operation": "Tweet", "hide": ["date"]}, _request(params={"id": "1"}))
        self.assertEqual(status, 200)
        self.assertEqual(body, {"id": "1", "body": "hello"})
        execution = self.executor.calls[0]
        self.assertEqual(execution["variables"], {"id": "1"})
        self.assertEqual(execution["operation_name"], "Tweet")
        self.assertEqual(execution["context"]["headers"], {"authorization": "Bearer t"})
        self.assertIsInstance(execution["context"]["rest_request"], RestRequest)

    async def test_success_status_from_manifest(self) -> None:
        status, _ = await self._run({"operation": "createTweet", "successStatusCode": 201}, _request())
        self.assertEqual(status, 201)
        status, _ = await self._run({"operation": "createTweet", "successStatusCode": 999}, _request())
        self.assertEqual(status, 200)

    async def test_parameter_precedence(self) -> None:
        request = _request(body={"id": "body"}, query={"id": "query", "q": 1}, params={"id": "path", "p": 2})
        self.assertEqual(build_param_bag(request), {"id": "body", "q": 1, "p": 2})
        await self._run({"operation": "Tweet"}, request)
        self.assertEqual(self.executor.calls[0]["variables"]["id"], "body")

    async def test_deleted_params_are_removed_from_body(self) -> None:
        body = {"tweetBody": "x", "nested": {"delete": {"me": 1, "keep": 2}}}
        await self._run(
            {"operation": "createTweet", "params": {"nested.delete.me": "__DELETED__", "absent.path": "__DELETED__"}},
            _request(body=body),
        )
        self.assertEqual(self.executor.calls[0]["variables"], {"tweetBody": "x", "nested": {"delete": {"keep": 2}}})
        self.assertEqual(body["nested"]["delete"], {"me": 1, "keep": 2})

        await self._run(
            {"operation": "createTweet", "params": {"nested.delete.me": "__DELETED__", "absent.path": "__DELETED__"}},
            _request(body={"tweetBody": "x", "nested": {"delete": {"keep": 2}}}),
        )
        self.assertEqual(self.executor.calls[0]["variables"], self.executor.calls[1]["variables"])

    async def test_renamed_variables(self) -> None:
        await self._run({"operation": "createTweet", "params": {"tweetBody": "body"}}, _request(body={"body": "hi"}))
        printed = print_ast(self.executor.calls[0]["query"])
        self.assertIn("$body: String", printed)
        self.assertIn("tweetBody: $body", printed)
        self.assertNotIn("$tweetBody", printed)

    def test_rename_matches_whole_variable_names(self) -> None:
        text = "query q($id: ID, $idList: [ID]){ a(id: $id, ids: $idList) }"
        self.assertEqual(
            rename_variables(text, {"id": "tweetId"}),
            "query q($tweetId: ID, $idList: [ID]){ a(id: $tweetId, ids: $idList) }",
        )

    async def test_wrap_request_body(self) -> None:
        await self._run(
            {"operation": "createTweet", "wrapRequestBodyWith": "input.data"},
            _request(body={"tweetBody": "x"}, params={"p": 1}),
        )
        self.assertEqual(self.executor.calls[0]["variables"], {"p": 1, "input": {"data": {"tweetBody": "x"}}})

    async def test_false_condition_skips_step(self) -> None:
        status, body = await self._run(
            {
                "operations": [
                    {"operation": "markTweetRead", "condition": {"read": True}},
                    {"operation": "Tweet", "condition": {"read": False}},
                ]
            },
            _request(body={"read": False, "id": "1"}),
        )
        self.assertEqual([call["operation_name"] for call in self.executor.calls], ["Tweet"])
        self.assertEqual(status, 200)
        self.assertEqual(body["id"], "1")

    async def test_last_executing_step_wins(self) -> None:
        status, body = await self._run(
            {"successStatusCode": 201, "operations": [{"operation": "createTweet"}, {"operation": "markTweetRead"}]},
            _request(body={"id": "1"}),
        )
        self.assertEqual([call["operation_name"] for call in self.executor.calls], ["createTweet", "markTweetRead"])
        self.assertEqual((status, body), (201, True))

    async def test_no_step_executes(self) -> None:
        status, body = await self._run(
            {"successStatusCode": 202, "operation": "Tweet", "condition": {"id": "nope"}},
            _request(body={"id": "1"}),
        )
        self.assertEqual((status, body), (202, {}))
        self.assertEqual(self.executor.calls, [])

    async def test_hook_transforms_request_for_its_step_only(self) -> None:
        def stamp(request, route, verb, operation):
            request.body["tweetBody"] = f"{verb} {route} {operation}"
            return request

        self.hooks["stamp"] = stamp
        await self._run(
            {
                "operations": [
                    {"operation": "createTweet", "requestMiddlewareFunction": "stamp"},
                    {"operation": "createTweet"},
                ]
            },
            _request(body={"tweetBody": "original"}),
        )
        self.assertEqual(self.executor.calls[0]["variables"]["tweetBody"], "POST /api/v1/tweets createTweet")
        self.assertEqual(self.executor.calls[1]["variables"]["tweetBody"], "original")

    async def test_hook_returning_non_request_is_server_error(self) -> None:
        self.hooks["drop"] = lambda request, route, verb, operation: None
        with self.assertLogs("gql2rest.actions", level="ERROR"):
            status, body = await self._run({"operation": "Tweet", "requestMiddlewareFunction": "drop"}, _request())
        self.assertEqual((status, body), (500, INTERNAL_SERVER_ERROR_FORMATTED))
        self.assertEqual(self.executor.calls, [])

    async def test_graphql_error_is_mapped(self) -> None:
        self.responses["Tweet"] = {
            "data": {"Tweet": None},
            "errors": [{"message": "denied", "extensions": {"code": "4003"}}],
        }
        seen = []

        def format_error(result, status):
            seen.append(status)
            return {"wrapped": result}

        status, body = await self._run({"operation": "Tweet"}, _request(), format_error=format_error)
        self.assertEqual(status, 403)
        self.assertEqual(seen, [403])
        self.assertNotIn("data", body["wrapped"])
        self.assertEqual(body["wrapped"]["errors"][0]["errorDescription"], "Access denied")

    async def test_unmapped_graphql_error_is_400(self) -> None:
        self.responses["Tweet"] = {"errors": [{"message": "bad", "extensions": {"code": "nope"}}]}
        status, body = await self._run({"operation": "Tweet"}, _request())
        self.assertEqual(status, 400)
        self.assertEqual(body, {"errors": [{"message": "bad", "extensions": {"code": "nope"}}]})

    async def test_partial_data_with_errors_is_success(self) -> None:
        self.responses["Tweets"] = {
            "data": {"Tweets": [{"id": "1", "body": "a"}]},
            "errors": [{"message": "one item failed"}],
        }
        status, body = await self._run({"operation": "Tweets"}, _request())
        self.assertEqual((status, body), (200, [{"id": "1", "body": "a"}]))

    async def test_apollo_style_exception_is_error_response(self) -> None:
        self.responses["Tweet"] = ApolloStyleError({"errors": [{"message": "denied", "extensions": {"code": "4003"}}]})
        status, body = await self._run({"operation": "Tweet"}, _request())
        self.assertEqual(status, 403)
        self.assertEqual(body["errors"][0]["message"], "denied")

    async def test_apollo_style_exception_with_data_is_error_response(self) -> None:
        self.responses["Tweet"] = ApolloStyleError(
            {
                "data": {"Tweet": {"id": "1", "body": "x", "date": "d"}},
                "errors": [{"message": "denied", "extensions": {"code": "4003"}}],
            }
        )
        status, body = await self._run({"operation": "Tweet"}, _request())
        self.assertEqual(status, 403)
        self.assertNotIn("data", body)
        self.assertEqual(body["errors"][0]["extensions"]["code"], "4003")

    async def test_executor_exception_is_opaque_500(self) -> None:
        self.responses["Tweet"] = RuntimeError("database password is hunter2")
        with self.assertLogs("gql2rest.actions", level="ERROR") as captured:
            status, body = await self._run({"operation": "Tweet"}, _request())
        self.assertEqual((status, body), (500, INTERNAL_SERVER_ERROR_FORMATTED))
        self.assertNotIn("hunter2", str(body))
        self.assertTrue(any("step_failed" in line for line in captured.output))

    async def test_non_dict_result_is_500(self) -> None:
        self.responses["Tweet"] = "oops"
        with self.assertLogs("gql2rest.actions", level="ERROR"):
            status, _ = await self._run({"operation": "Tweet"}, _request())
        self.assertEqual(status, 500)

    async def test_unparseable_document_is_500(self) -> None:
        with self.assertLogs("gql2rest.actions", level="ERROR"):
            status, _ = await self._run({"operation": "Broken"}, _request())
        self.assertEqual(status, 500)

    async def test_failed_step_does_not_stop_chain(self) -> None:
        self.responses["Tweet"] = RuntimeError("boom")
        with self.assertLogs("gql2rest.actions", level="ERROR"):
            status, body = await self._run(
                {"operations": [{"operation": "Tweet"}, {"operation": "markTweetRead"}]},
                _request(body={"id": "1"}),
            )
        self.assertEqual((status, body), (200, True))

    async def test_sync_executor_runs_in_worker_thread(self) -> None:
        calls = []

        def sync_executor(execution):
            calls.append(execution["operation_name"])
            return {"data": {"Tweets": []}}

        status, body = await self._run({"operation": "Tweets"}, _request(), executor=sync_executor)
        self.assertEqual((status, body, calls), (200, [], ["Tweets"]))

    async def test_response_filter_from_query(self) -> None:
        status, body = await self._run({"operation": "Tweets"}, _request(query={"fields": "id"}))
        self.assertEqual(body, [{"id": "1"}, {"id": "2"}])
        status, body = await self._run({"operation": "Tweets"}, _request(query={"fields": ":[?id=='2'].body"}))
        self.assertEqual(body, ["b"])

    async def test_custom_format_data(self) -> None:
        status, body = await self._run({"operation": "Tweet"}, _request(), format_data=lambda result: result)
        self.assertEqual(body, self.responses["Tweet"])


if __name__ == "__main__":
    unittest.main()
