"""
Tests for the Intercom and Asana HTTP clients with a mocked requests session
"""

from unittest.mock import MagicMock

import pytest
import requests

from asana_client import AsanaAPIError, AsanaClient
from intercom_client import IntercomAPIError, IntercomClient


def make_response(status_code=200, json_data=None, headers=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    response.content = b"{}" if json_data is not None else b""
    response.json.return_value = json_data
    return response


def make_session(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def intercom_client(*responses):
    session = make_session(*responses)
    client = IntercomClient({"access_token": "tok", "admin_id": "999"}, session=session)
    client.sleeps = []
    client._sleep = client.sleeps.append
    return client, session


def asana_client(*responses):
    session = make_session(*responses)
    client = AsanaClient({"access_token": "tok", "workspace_id": "W1"}, session=session)
    client.sleeps = []
    client._sleep = client.sleeps.append
    return client, session


def test_intercom_headers():
    client, session = intercom_client()
    assert session.headers["Authorization"] == "Bearer tok"
    assert session.headers["Intercom-Version"] == "2.14"


def test_update_ticket_is_one_put():
    client, session = intercom_client(make_response(json_data={"id": "t1"}))

    client.update_ticket("t1", ticket_attributes={"Asana Status": "Done"}, ticket_state_id=5, open=False)

    session.request.assert_called_once_with(
        "PUT", "https://api.intercom.io/tickets/t1",
        json={"ticket_attributes": {"Asana Status": "Done"}, "ticket_state_id": "5", "open": False},
        timeout=30,
    )


def test_update_ticket_requires_changes():
    client, _ = intercom_client()
    with pytest.raises(ValueError):
        client.update_ticket("t1")


def test_add_note_payload():
    client, session = intercom_client(make_response(json_data={"type": "conversation"}))

    client.add_note("c1", "<p>hi</p>")

    _, kwargs = session.request.call_args
    assert kwargs["json"] == {"message_type": "note", "type": "admin", "admin_id": "999", "body": "<p>hi</p>"}


def test_rate_limit_honours_retry_after():
    client, session = intercom_client(
        make_response(429, headers={"Retry-After": "2"}),
        make_response(json_data={"data": [{"id": 1}]}),
    )

    assert client.list_ticket_states() == [{"id": 1}]
    assert client.sleeps == [2.0]


def test_server_error_is_retried():
    client, session = intercom_client(make_response(502, text="bad gateway"), make_response(json_data={"id": "c1"}))

    assert client.get_conversation("c1") == {"id": "c1"}
    assert session.request.call_count == 2


def test_client_error_is_not_retried():
    client, session = intercom_client(make_response(404, text="not found"))

    with pytest.raises(IntercomAPIError) as exc:
        client.get_ticket("t404")

    assert exc.value.status_code == 404
    assert exc.value.response_text == "not found"
    assert session.request.call_count == 1


def test_network_errors_exhaust_retries():
    client, session = intercom_client(*[requests.ConnectionError("down")] * 3)

    with pytest.raises(IntercomAPIError):
        client.get_conversation("c1")
    assert session.request.call_count == 3


def test_create_task_timeout_is_sent_once():
    """A timed-out POST may have been applied, so it is not resent"""
    client, session = asana_client(requests.exceptions.ReadTimeout("read timed out"),
                                   make_response(201, json_data={"data": {"gid": "123"}}))

    with pytest.raises(AsanaAPIError):
        client.create_task("Jane", ["P1"])
    assert session.request.call_count == 1
    assert client.sleeps == []


def test_post_server_error_is_not_retried():
    client, session = intercom_client(make_response(502, text="bad gateway"),
                                      make_response(json_data={"type": "conversation"}))

    with pytest.raises(IntercomAPIError) as exc:
        client.add_note("c1", "<p>hi</p>")
    assert exc.value.status_code == 502
    assert session.request.call_count == 1


def test_post_rate_limit_is_retried():
    client, session = asana_client(
        make_response(429, headers={"Retry-After": "1"}),
        make_response(json_data={"data": {"gid": "s1"}}),
    )

    assert client.add_comment("task-1", "hello")["gid"] == "s1"
    assert session.request.call_count == 2
    assert client.sleeps == [1.0]


def test_put_timeout_is_retried():
    client, session = intercom_client(requests.exceptions.ReadTimeout("read timed out"),
                                      make_response(json_data={"id": "t1"}))

    client.update_ticket("t1", ticket_attributes={"Asana Status": "Done"})
    assert session.request.call_count == 2


def test_contact_name_fallback():
    client, _ = intercom_client(make_response(500), make_response(500), make_response(500))
    assert client.get_contact_name("x") == "Unknown Contact"


def test_asana_create_task_payload():
    client, session = asana_client(make_response(json_data={"data": {"gid": "123", "name": "Jane"}}))

    task = client.create_task("Jane", ["P1"], notes="n", custom_fields={"f1": "v"})

    assert task["gid"] == "123"
    _, kwargs = session.request.call_args
    assert kwargs["json"] == {"data": {"workspace": "W1", "projects": ["P1"], "name": "Jane", "notes": "n",
                                       "custom_fields": {"f1": "v"}}}


def test_asana_create_task_without_gid_raises():
    client, _ = asana_client(make_response(json_data={"data": {}}))
    with pytest.raises(AsanaAPIError):
        client.create_task("Jane", ["P1"])


def test_asana_upload_is_multipart():
    client, session = asana_client(make_response(json_data={"data": {"gid": "a1", "permanent_url": "https://u"}}))

    data = client.upload_attachment("task-1", "r.png", b"png", "image/png")

    assert data["permanent_url"] == "https://u"
    args, kwargs = session.request.call_args
    assert args[0] == "POST"
    assert args[1].endswith("/attachments")
    assert kwargs["data"] == {"parent": "task-1"}
    assert kwargs["files"] == {"file": ("r.png", b"png", "image/png")}


def test_test_connection():
    client, _ = asana_client(make_response(json_data={"data": {"gid": "me"}}))
    assert client.test_connection() is True

    client, _ = intercom_client(make_response(401, text="unauthorized"))
    assert client.test_connection() is False
