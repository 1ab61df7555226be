"""
Thin HTTP wrapper for talking to the VoiceText Pro API.

Every call carries the session cookie (kept in the requests.Session cookie
jar) and a JSON content type unless the caller overrides it. There is no
retry and no timeout: failures propagate to the caller as requests
exceptions, and non-2xx responses are returned as-is.
"""
import json

import requests


class ApiClient:
    DEFAULT_HEADERS = {'Content-Type': 'application/json'}

    def __init__(self, base_url='', session=None, headers=None):
        self.base_url = base_url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.headers = dict(self.DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)

    def url_for(self, path):
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method, path, body=None, headers=None, **kwargs):
        merged = dict(self.headers)
        if headers:
            merged.update(headers)
        data = json.dumps(body) if body is not None else None
        return self.session.request(method, self.url_for(path), data=data, headers=merged, **kwargs)

    def get(self, path, **kwargs):
        return self.request('GET', path, **kwargs)

    def post(self, path, body=None, **kwargs):
        return self.request('POST', path, body=body, **kwargs)

    def patch(self, path, body=None, **kwargs):
        return self.request('PATCH', path, body=body, **kwargs)

    def delete(self, path, **kwargs):
        return self.request('DELETE', path, **kwargs)
