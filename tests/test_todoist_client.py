import json
import unittest
from unittest import mock

from habitsync.errors import TransportError, UnexpectedResponseError
from habitsync.models import SourceConfig
from habitsync.todoist_client import TodoistClient


def _response(status_code: int = 200, body=None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.text = ""
    response.json.return_value = body
    return response


class TodoistClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.client = TodoistClient(
            SourceConfig(api_token="tok", base_url="https://todoist.test/api/v1"),
            session=self.session,
        )

    def test_first_fetch_requests_full_sync(self) -> None:
        self.session.request.return_value = _response(
            body={
                "sync_token": "c1",
                "items": [
                    {"id": "1", "content": "Stretch", "labels": ["phy"], "checked": False, "priority": 2},
                    {"id": "2", "content": "Gone", "is_deleted": True},
                ],
            }
        )

        delta = self.client.fetch_delta(None)

        self.assertEqual(delta.new_cursor, "c1")
        self.assertEqual([item.id for item in delta.items], ["1", "2"])
        self.assertTrue(delta.items[1].is_deleted)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://todoist.test/api/v1/sync"))
        self.assertEqual(kwargs["data"]["sync_token"], "*")
        self.assertEqual(json.loads(kwargs["data"]["resource_types"]), ["items"])
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")

    def test_incremental_fetch_passes_cursor(self) -> None:
        self.session.request.return_value = _response(body={"sync_token": "c2", "items": []})
        delta = self.client.fetch_delta("c1")
        self.assertEqual(self.session.request.call_args.kwargs["data"]["sync_token"], "c1")
        self.assertEqual(delta.items, [])

    def test_missing_sync_token_is_unexpected(self) -> None:
        self.session.request.return_value = _response(body={"items": []})
        with self.assertRaises(UnexpectedResponseError):
            self.client.fetch_delta(None)

    def test_http_error_is_transport_error(self) -> None:
        self.session.request.return_value = _response(status_code=403)
        with self.assertRaises(TransportError) as ctx:
            self.client.fetch_delta(None)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_labels_follow_pagination(self) -> None:
        self.session.request.side_effect = [
            _response(body={"results": [{"id": "9", "name": "Strength"}], "next_cursor": "p2"}),
            _response(body={"results": [{"id": "8", "name": "Social"}], "next_cursor": None}),
        ]

        labels = self.client.fetch_labels()

        self.assertEqual(labels, {"Strength": "Strength", "Social": "Social"})
        second_call = self.session.request.call_args_list[1]
        self.assertEqual(second_call.kwargs["params"], {"cursor": "p2"})

    def test_labels_accept_plain_list(self) -> None:
        self.session.request.return_value = _response(body=[{"name": "int"}, {"name": ""}])
        self.assertEqual(self.client.fetch_labels(), {"int": "int"})


if __name__ == "__main__":
    unittest.main()
