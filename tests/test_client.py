import os
import sys
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import AccelClient


def _response(payload):
    resp = mock.Mock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = AccelClient(base_url="http://testserver/", timeout=5)

    def test_create_session_drops_empty_params(self) -> None:
        with mock.patch("client.requests.post", return_value=_response({"id": "abc"})) as post:
            sid = self.client.create_session("sprint", date="2024-03-01")
        self.assertEqual(sid, "abc")
        post.assert_called_once_with(
            "http://testserver/sessions/sprint", params={"date": "2024-03-01"}, timeout=5
        )

    def test_add_race(self) -> None:
        with mock.patch("client.requests.post", return_value=_response({"id": "r1"})) as post:
            self.client.add_race("m1", 60, "final", 6.9)
        self.assertEqual(
            post.call_args.kwargs["params"], {"distance": 60, "round": "final", "time": 6.9}
        )

    def test_insights_filters(self) -> None:
        with mock.patch("client.requests.get", return_value=_response([])) as get:
            self.assertEqual(self.client.insights(domain="lift", exercise=None), [])
        get.assert_called_once_with(
            "http://testserver/insights", params={"domain": "lift"}, timeout=5
        )

    def test_http_errors_propagate(self) -> None:
        resp = _response({})
        resp.raise_for_status.side_effect = RuntimeError("409")
        with mock.patch("client.requests.post", return_value=resp):
            with self.assertRaises(RuntimeError):
                self.client.complete_session("sprint", "s1")


if __name__ == "__main__":
    unittest.main()
