from unittest import mock

import pytest
import requests

from .api_client import ApiClient


def _client(**kwargs):
    session = mock.Mock()
    return ApiClient('http://localhost:5000/', session=session, **kwargs), session


def test_json_body_and_default_headers():
    client, session = _client()
    client.post('/api/auth/login', {'username': 'alice', 'password': 'x'})

    session.request.assert_called_once_with(
        'POST', 'http://localhost:5000/api/auth/login',
        data='{"username": "alice", "password": "x"}',
        headers={'Content-Type': 'application/json'},
    )


def test_per_call_headers_are_merged():
    client, session = _client(headers={'X-Client': 'admin'})
    client.get('api/notifications', headers={'Accept': 'text/plain', 'Content-Type': 'text/plain'})

    headers = session.request.call_args[1]['headers']
    assert headers == {'Content-Type': 'text/plain', 'X-Client': 'admin', 'Accept': 'text/plain'}
    assert session.request.call_args[1]['data'] is None
    assert client.headers == {'Content-Type': 'application/json', 'X-Client': 'admin'}


def test_absolute_urls_pass_through():
    client, session = _client()
    client.delete('https://example.com/api/x')
    assert session.request.call_args[0] == ('DELETE', 'https://example.com/api/x')


def test_responses_and_errors_propagate():
    client, session = _client()
    session.request.return_value = mock.Mock(status_code=500)
    assert client.patch('/api/notifications/1/read').status_code == 500

    session.request.side_effect = requests.ConnectionError('refused')
    with pytest.raises(requests.ConnectionError):
        client.get('/api/auth/me')


def test_uses_a_cookie_keeping_session_by_default():
    assert isinstance(ApiClient().session, requests.Session)


def test_talks_to_the_flask_app(app, make_user):
    make_user('alice')
    flask_client = app.test_client()

    class Adapter:
        def request(self, method, url, data=None, headers=None):
            return flask_client.open(url, method=method, data=data, headers=headers)

    client = ApiClient(session=Adapter())
    assert client.post('/api/auth/login', {'username': 'alice', 'password': 'secret123'}).status_code == 200
    assert client.get('/api/auth/me').get_json()['user']['username'] == 'alice'
