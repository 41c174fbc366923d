import json
import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "API"))

import gcorecloud  # noqa: E402

API_URL = "https://api.test/cloud"
FIP_BASE = f"{API_URL}/v1/floatingips/1/2/"
TASKS_BASE = f"{API_URL}/v1/tasks/"
GPU_BASE = f"{API_URL}/v3/gpu/baremetal/1/2/"


class Resp:
    def __init__(self, status_code=200, payload=None, headers=None, text=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload
        self.headers = headers or {}
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class FakeApi:
    """
    Routes `(METHOD, url)` to canned responses.

    Responses queued for one route are served in order; the last one repeats.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []
        self.sleeps = []

    def add(self, method, url, *responses):
        self.routes[(method.upper(), url)] = list(responses)

    def request(self, **kwargs):
        self.calls.append(kwargs)
        key = (kwargs["method"].upper(), kwargs["url"])
        if key not in self.routes:
            raise AssertionError(f"unexpected request: {key}")
        queue = self.routes[key]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def count(self, method, url):
        return sum(1 for c in self.calls if c["method"] == method.upper() and c["url"] == url)


@pytest.fixture()
def fake_api(monkeypatch, tmp_path):
    # Keep a developer's `.env` out of the picture.
    monkeypatch.chdir(tmp_path)
    for k in [
        "GCLOUD_AUTH_URL",
        "GCLOUD_CLIENT_TYPE",
        "GCLOUD_USERNAME",
        "GCLOUD_PASSWORD",
        "GCLOUD_ACCESS_TOKEN",
        "GCLOUD_REFRESH_TOKEN",
    ]:
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("GCLOUD_API_URL", API_URL)
    monkeypatch.setenv("GCLOUD_API_TOKEN", "tok-123")
    monkeypatch.setenv("GCLOUD_PROJECT", "1")
    monkeypatch.setenv("GCLOUD_REGION", "2")

    api = FakeApi()
    monkeypatch.setattr(gcorecloud.requests, "request", api.request)
    monkeypatch.setattr(gcorecloud.time, "sleep", api.sleeps.append)
    return api
