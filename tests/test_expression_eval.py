import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from expression_eval import apply_field_pick, apply_jmespath, evaluate, filter_response, split_fields


class TestExpressionEval(unittest.TestCase):
    def setUp(self) -> None:
        self.tweet = {
            "id": "1",
            "body": "hello",
            "Author": {"id": "u1", "username": "alice", "first_name": "Alice"},
            "Stats": {"views": 10, "likes": 7},
        }
        self.tweets = [
            {"id": "1", "body": "hello", "Stats": {"likes": 7}},
            {"id": "2", "body": "world", "Stats": {"likes": 3}},
        ]

    def test_split_fields(self) -> None:
        self.assertEqual(split_fields(" id , Author.username,, "), ["id", "Author.username"])

    def test_field_pick_object(self) -> None:
        picked = evaluate("id, Author.username", self.tweet)
        self.assertEqual(picked, {"id": "1", "Author": {"username": "alice"}})

    def test_field_pick_list_per_element(self) -> None:
        picked = evaluate("id,Stats.likes", self.tweets)
        self.assertEqual(picked, [{"id": "1", "Stats": {"likes": 7}}, {"id": "2", "Stats": {"likes": 3}}])

    def test_field_pick_no_match_on_list_is_empty_list(self) -> None:
        self.assertEqual(apply_field_pick(self.tweets, ["nothing"]), [])

    def test_field_pick_no_match_on_object_is_empty_object(self) -> None:
        self.assertEqual(evaluate("nothing", self.tweet), {})

    def test_jmespath(self) -> None:
        self.assertEqual(evaluate(":Stats.likes", self.tweet), 7)
        self.assertEqual(evaluate(":[?Stats.likes > `5`].id", self.tweets), ["1"])

    def test_jmespath_no_match(self) -> None:
        self.assertEqual(evaluate(":missing", self.tweet), {})
        self.assertEqual(evaluate(":[0].missing", self.tweets), [])

    def test_jmespath_malformed_logs_and_returns_empty(self) -> None:
        with self.assertLogs("gql2rest.filters", level="WARNING") as captured:
            self.assertEqual(apply_jmespath(self.tweets, "[?"), [])
        self.assertIn("jmespath_filter_failed", captured.output[0])

    def test_blank_expression_is_identity(self) -> None:
        self.assertIs(evaluate("  ", self.tweet), self.tweet)

    def test_filter_response_reads_query_field(self) -> None:
        query = {"fields": "id"}
        self.assertEqual(filter_response(self.tweet, query, "fields"), {"id": "1"})
        self.assertIs(filter_response(self.tweet, {"other": "id"}, "fields"), self.tweet)
        self.assertIs(filter_response(self.tweet, None, "fields"), self.tweet)

    def test_filter_response_repeated_param_uses_last(self) -> None:
        query = {"select": ["body", "id"]}
        self.assertEqual(filter_response(self.tweet, query, "select"), {"id": "1"})


if __name__ == "__main__":
    unittest.main()
