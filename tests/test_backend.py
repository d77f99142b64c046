"""Backend index HTTP client (requests session mocked)."""

from unittest.mock import MagicMock

import pytest
import requests

from basemailer.backend import BackendClient
from basemailer.commitment import compute_commitment
from basemailer.config import BackendConfig
from basemailer.errors import BackendError


COMMITMENT = compute_commitment("bafy-handle")


def _response(status=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def _client(response=None, api_key="secret"):
    session = MagicMock()
    if response is not None:
        session.request.return_value = response
    return BackendClient(BackendConfig(base_url="https://relay.example/", api_key=api_key), session=session), session


def test_api_key_header_and_url():
    client, session = _client(_response(body={"inbox": []}))
    client.get_inbox("bob@basemailer.com")

    method, url = session.request.call_args.args
    assert method == "GET"
    assert url == "https://relay.example/api/inbox/bob%40basemailer.com"
    assert session.request.call_args.kwargs["headers"]["x-api-key"] == "secret"
    assert session.request.call_args.kwargs["timeout"] == 30.0


def test_no_api_key_header_when_unset():
    client, session = _client(_response(body={"sentbox": [{"mailId": "1"}]}), api_key=None)
    assert client.get_sentbox("a@x") == [{"mailId": "1"}]
    assert "x-api-key" not in session.request.call_args.kwargs["headers"]


def test_send_mail_payload():
    client, session = _client(_response(body={"success": True, "mailId": "4"}))
    assert client.send_mail("0xproof", "bafy-handle", "a@x", "b@x")["mailId"] == "4"
    assert session.request.call_args.kwargs["json"] == {
        "proof": "0xproof",
        "cid": "bafy-handle",
        "senderEmail": "a@x",
        "recipientEmail": "b@x",
    }


def test_get_mail_with_handle():
    body = {"mail": {"mailId": "3", "cid": "bafy-handle", "contentHash": COMMITMENT}}
    client, _ = _client(_response(body=body))
    mail = client.get_mail(3)
    assert mail.handle == "bafy-handle"
    assert mail.envelope is None


def test_commitment_stored_as_handle_means_unknown():
    body = {"mail": {"mailId": "3", "cid": COMMITMENT, "contentHash": COMMITMENT}}
    client, _ = _client(_response(body=body))
    assert client.lookup_handle(3) is None


def test_lookup_handle_404_is_a_miss():
    client, _ = _client(_response(status=404, text="Mail not found"))
    assert client.lookup_handle(3) is None


def test_server_error_raises():
    client, _ = _client(_response(status=500, text="boom"))
    with pytest.raises(BackendError) as exc:
        client.lookup_handle(3)
    assert exc.value.status == 500


def test_transport_error_raises():
    client, session = _client()
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(BackendError, match="refused"):
        client.get_inbox("a@x")


def test_non_json_body_raises():
    client, _ = _client(_response(body=None, text="<html>"))
    with pytest.raises(BackendError):
        client.get_inbox("a@x")


@pytest.mark.parametrize("body", [[], ["bafy-handle"], "bafy-handle", 3])
def test_non_object_body_raises(body):
    client, _ = _client(_response(body=body))
    with pytest.raises(BackendError, match="instead of an object"):
        client.get_mail(3)


def test_get_mail_parses_package(engine, bob_keys):
    from basemailer.crypto import MessageContent

    envelope = engine.encrypt(MessageContent("a@x", "b@x", "hi", "hello"), bob_keys[1])
    client, _ = _client(_response(body={"mail": {"mailId": "1"}, "package": envelope.to_dict()}))
    assert client.get_mail(1).envelope == envelope


def test_get_mail_ignores_malformed_package():
    client, _ = _client(_response(body={"mail": {"mailId": "1", "cid": "bafy"}, "package": {"version": "1.0"}}))
    mail = client.get_mail(1)
    assert mail.envelope is None
    assert mail.handle == "bafy"
