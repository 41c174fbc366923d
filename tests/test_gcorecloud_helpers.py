import itertools
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

import jwt
import pytest
import requests


REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "API"))

import gcorecloud  # noqa: E402
from conftest import FIP_BASE, GPU_BASE, TASKS_BASE, Resp  # noqa: E402


def _config(**kwargs):
    base = dict(
        api_url="https://api.test/cloud",
        auth_url="https://auth.test",
        project_id=1,
        region_id=2,
        api_token="tok-123",
        max_retry=3,
        backoff_max_s=10,
    )
    base.update(kwargs)
    return gcorecloud.ClientConfig(**base)


def test_parse_metadata_splits_on_first_equals():
    assert gcorecloud.parse_metadata(["a=1", "b=2"]) == {"a": "1", "b": "2"}
    assert gcorecloud.parse_metadata(["url=https://x.test/?q=1"]) == {"url": "https://x.test/?q=1"}
    assert gcorecloud.parse_metadata(["a=1", "a=2"]) == {"a": "2"}
    assert gcorecloud.parse_metadata([]) == {}


def test_parse_metadata_rejects_entry_without_equals():
    with pytest.raises(gcorecloud.ValidationError) as exc:
        gcorecloud.parse_metadata(["a=1", "broken"])
    assert "invalid metadata format" in str(exc.value)


def test_redact_sensitive_text_masks_auth_headers_fields_and_query_params():
    raw = (
        "Authorization: Bearer abc.def.ghi "
        "Authorization: APIKey 1234$abcd "
        "password=supersecret "
        '{"access":"tok123","refresh":"ref456"} '
        "https://example.test/image.qcow2?sig=verysecret&v=1"
    )
    cooked = gcorecloud.redact_sensitive_text(raw)
    assert "abc.def.ghi" not in cooked
    assert "1234$abcd" not in cooked
    assert "supersecret" not in cooked
    assert "tok123" not in cooked
    assert "ref456" not in cooked
    assert "verysecret" not in cooked
    assert "[REDACTED]" in cooked


def test_parse_retry_after_seconds_supports_delay_and_http_date():
    now = datetime(2026, 2, 11, 0, 0, 0, tzinfo=timezone.utc)

    assert gcorecloud._parse_retry_after_seconds("7", now=now) == 7
    assert gcorecloud._parse_retry_after_seconds("Wed, 11 Feb 2026 00:00:03 GMT", now=now) == 3
    assert gcorecloud._parse_retry_after_seconds("", now=now) is None
    assert gcorecloud._parse_retry_after_seconds("not-a-date", now=now) is None
    assert gcorecloud._parse_retry_after_seconds("Tue, 10 Feb 2026 23:59:59 GMT", now=now) == 0


def test_config_from_env_overrides_and_client_type_inference(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GCLOUD_PROJECT", "11")
    monkeypatch.setenv("GCLOUD_REGION", "22")
    monkeypatch.setenv("GCLOUD_USERNAME", "me")
    monkeypatch.setenv("GCLOUD_PASSWORD", "pw")
    for k in ["GCLOUD_API_TOKEN", "GCLOUD_ACCESS_TOKEN", "GCLOUD_CLIENT_TYPE", "GCLOUD_API_URL"]:
        monkeypatch.delenv(k, raising=False)

    cfg = gcorecloud.ClientConfig.from_env(region_id=33, api_url=None)
    assert cfg.project_id == 11
    assert cfg.region_id == 33
    assert cfg.api_url == gcorecloud.DEFAULT_API_URL
    assert cfg.resolved_client_type() == "platform"


def test_config_from_env_loads_dotenv_without_overriding_environment(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("GCLOUD_PROJECT=5\nGCLOUD_REGION=6\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GCLOUD_PROJECT", raising=False)
    monkeypatch.setenv("GCLOUD_REGION", "9")

    cfg = gcorecloud.ClientConfig.from_env()
    assert cfg.project_id == 5
    assert cfg.region_id == 9
    monkeypatch.delenv("GCLOUD_PROJECT", raising=False)


def test_config_rejects_bad_ints_and_missing_credentials(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GCLOUD_PROJECT", "abc")
    with pytest.raises(gcorecloud.ConfigurationError):
        gcorecloud.ClientConfig.from_env()

    with pytest.raises(gcorecloud.ConfigurationError):
        gcorecloud.ClientConfig().resolved_client_type()
    with pytest.raises(gcorecloud.ConfigurationError):
        gcorecloud.ClientConfig(client_type="oauth", api_token="x").resolved_client_type()


def test_service_client_builds_scoped_and_unscoped_urls():
    cfg = _config()
    fips = gcorecloud.new_service_client(cfg, "floatingips", "v1")
    tasks = gcorecloud.new_task_client(cfg)
    gpu = gcorecloud.new_gpu_image_client(cfg, "baremetal")

    assert fips.resource_base == FIP_BASE
    assert fips.service_url("fip-1", "assign") == FIP_BASE + "fip-1/assign"
    assert tasks.resource_base == TASKS_BASE
    assert gpu.service_url("images") == GPU_BASE + "images"

    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.new_gpu_image_client(cfg, "container")
    with pytest.raises(gcorecloud.ConfigurationError):
        gcorecloud.new_service_client(_config(region_id=None), "floatingips", "v1")


def test_query_helper_retries_retryable_status_and_respects_retry_after():
    client = gcorecloud.new_service_client(_config(), "floatingips", "v1")
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            return Resp(503, {"message": "busy"}, headers={"Retry-After": "2"})
        return Resp(200, {"id": "fip-1"})

    with mock.patch.object(gcorecloud.requests, "request", side_effect=fake_request):
        with mock.patch.object(gcorecloud.time, "sleep") as sleep_mock:
            body = client.get(client.service_url("fip-1"))

    assert body == {"id": "fip-1"}
    assert len(calls) == 2
    assert calls[0]["headers"]["Authorization"] == "APIKey tok-123"
    sleep_mock.assert_called_once_with(2)


def test_query_helper_retries_transport_errors_then_gives_up():
    client = gcorecloud.new_service_client(_config(max_retry=2), "floatingips", "v1")

    with mock.patch.object(
        gcorecloud.requests, "request", side_effect=requests.ConnectionError("reset")
    ) as req_mock:
        with mock.patch.object(gcorecloud.time, "sleep") as sleep_mock:
            with pytest.raises(gcorecloud.ApiRequestError) as exc:
                client.get(client.resource_base)

    assert req_mock.call_count == 2
    assert sleep_mock.call_args_list == [mock.call(1)]
    assert exc.value.status_code is None


def test_query_helper_does_not_retry_client_errors_and_maps_404():
    client = gcorecloud.new_service_client(_config(), "floatingips", "v1")

    with mock.patch.object(
        gcorecloud.requests, "request", return_value=Resp(404, {"message": "not found"})
    ) as req_mock:
        with mock.patch.object(gcorecloud.time, "sleep") as sleep_mock:
            with pytest.raises(gcorecloud.NotFoundError) as exc:
                gcorecloud.get_floating_ip(client, "missing")

    assert req_mock.call_count == 1
    sleep_mock.assert_not_called()
    assert exc.value.status_code == 404
    assert "last_status: 404" in str(exc.value)


def test_query_helper_redacts_failure_text():
    client = gcorecloud.new_service_client(_config(retry=False), "floatingips", "v1")
    text = 'bad request: bearer bad.token.value "password":"hunter2" https://x.test/a?sig=s3cr3t'

    with mock.patch.object(gcorecloud.requests, "request", return_value=Resp(400, text=text)):
        with pytest.raises(gcorecloud.ApiRequestError) as exc:
            client.get(client.resource_base)

    msg = str(exc.value)
    assert "bad.token.value" not in msg
    assert "hunter2" not in msg
    assert "s3cr3t" not in msg
    assert "[REDACTED]" in msg


def test_query_helper_prefers_session_when_present():
    class DummySession:
        def __init__(self):
            self.calls = []

        def request(self, **kwargs):
            self.calls.append(kwargs)
            return Resp(200, {"count": 0, "results": []})

    session = DummySession()
    client = gcorecloud.new_service_client(_config(), "floatingips", "v1", session=session)

    with mock.patch.object(
        gcorecloud.requests,
        "request",
        side_effect=AssertionError("requests.request should not be used"),
    ):
        assert gcorecloud.list_all_floating_ips(client) == []

    assert len(session.calls) == 1


def test_token_expiry_soon_and_not_soon():
    auth = gcorecloud.Authenticator(_config(api_token="", access_token="x", client_type="token"))
    token = jwt.encode({"exp": 100}, "x" * 32, algorithm="HS256")
    with mock.patch.object(time, "time", return_value=50):
        assert auth.__token_expiry__(token) is False
    with mock.patch.object(time, "time", return_value=80):
        assert auth.__token_expiry__(token) is True
    assert auth.__token_expiry__("opaque-token") is False


def test_platform_auth_logs_in_then_refreshes_on_401():
    cfg = _config(api_token="", username="me", password="pw", retry=False)
    client = gcorecloud.new_service_client(cfg, "floatingips", "v1")
    calls = []

    def fake_request(**kwargs):
        calls.append(kwargs)
        url = kwargs["url"]
        if url == "https://auth.test/iam/auth/jwt/login":
            return Resp(200, {"access": "acc-1", "refresh": "ref-1"})
        if url == "https://auth.test/iam/auth/jwt/refresh":
            assert kwargs["json"] == {"refresh": "ref-1"}
            return Resp(200, {"access": "acc-2", "refresh": "ref-2"})
        if kwargs["headers"]["Authorization"] == "Bearer acc-1":
            return Resp(401, {"message": "expired"})
        return Resp(200, {"id": "fip-1", "status": "ACTIVE"})

    with mock.patch.object(gcorecloud.requests, "request", side_effect=fake_request):
        fip = gcorecloud.get_floating_ip(client, "fip-1")

    assert fip.id == "fip-1"
    assert [c["url"] for c in calls] == [
        "https://auth.test/iam/auth/jwt/login",
        FIP_BASE + "fip-1",
        "https://auth.test/iam/auth/jwt/refresh",
        FIP_BASE + "fip-1",
    ]


def test_pager_follows_next_links_and_restarts_per_call():
    client = gcorecloud.new_service_client(_config(), "floatingips", "v1")
    pages = {
        FIP_BASE: Resp(
            200,
            {"count": 3, "results": [{"id": "a"}, {"id": "b"}], "links": {"next": "?offset=2"}},
        ),
        FIP_BASE + "?offset=2": Resp(200, {"count": 3, "results": [{"id": "c"}], "links": {}}),
    }
    seen = []

    def fake_request(**kwargs):
        seen.append(kwargs["url"])
        return pages[kwargs["url"]]

    with mock.patch.object(gcorecloud.requests, "request", side_effect=fake_request):
        pager = gcorecloud.list_floating_ips(client)
        assert [f.id for f in pager.all_items()] == ["a", "b", "c"]
        assert [f.id for f in pager.all_items()] == ["a", "b", "c"]

    assert seen == [FIP_BASE, FIP_BASE + "?offset=2"] * 2


def test_pager_keeps_filters_for_relative_next_link():
    client = gcorecloud.new_task_client(_config())
    base = TASKS_BASE.rstrip("/")
    pages = {
        base: Resp(200, {"results": [{"id": "t1"}], "links": {"next": "?offset=1"}}),
        base + "?offset=1": Resp(
            200,
            {"results": [{"id": "t2"}], "links": {"next": base + "?offset=2&project_id=1"}},
        ),
        base + "?offset=2&project_id=1": Resp(200, {"results": [{"id": "t3"}]}),
    }
    calls = []

    def fake_request(**kwargs):
        calls.append((kwargs["url"], kwargs.get("params")))
        return pages[kwargs["url"]]

    with mock.patch.object(gcorecloud.requests, "request", side_effect=fake_request):
        pager = gcorecloud.Pager(
            client,
            base,
            lambda page: page["results"],
            params={"project_id": 1, "region_id": 2},
            caller="list_tasks",
        )
        assert [t["id"] for t in pager.all_items()] == ["t1", "t2", "t3"]

    assert calls == [
        (base, {"project_id": 1, "region_id": 2}),
        (base + "?offset=1", {"project_id": 1, "region_id": 2}),
        (base + "?offset=2&project_id=1", {"region_id": 2}),
    ]


def test_task_results_accepts_tasks_list_and_single_id():
    assert gcorecloud.TaskResults.from_dict({"tasks": ["t1", "t2"]}).tasks == ["t1", "t2"]
    assert gcorecloud.TaskResults.from_dict({"id": "t9"}).tasks == ["t9"]
    assert gcorecloud.TaskResults.from_dict({"tasks": []}).tasks == []
    with pytest.raises(gcorecloud.ApiRequestError):
        gcorecloud.TaskResults.from_dict({"unexpected": True})


def test_create_floating_ip_opts_validation():
    body = gcorecloud.CreateFloatingIPOpts(port_id="p1", fixed_ip_address=" 10.0.0.5 ").to_request_body()
    assert body == {"port_id": "p1", "fixed_ip_address": "10.0.0.5"}

    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.CreateFloatingIPOpts(port_id="", fixed_ip_address="10.0.0.5").to_request_body()
    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.CreateFloatingIPOpts(port_id="p1", fixed_ip_address="10.0.0").to_request_body()


def test_upload_gpu_image_opts_omits_empty_optionals_and_validates_choices():
    body = gcorecloud.UploadGPUImageOpts(
        url="https://img.test/a.qcow2",
        name="img",
        os_type="linux",
        os_distro="",
        metadata={"team": "ml"},
    ).to_request_body()
    assert body == {
        "url": "https://img.test/a.qcow2",
        "name": "img",
        "cow_format": False,
        "os_type": "linux",
        "metadata": {"team": "ml"},
    }

    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.UploadGPUImageOpts(url="u", name="").to_request_body()
    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.UploadGPUImageOpts(url="u", name="n", ssh_key="maybe").to_request_body()


def test_wait_for_task_polls_until_finished():
    client = gcorecloud.new_task_client(_config())
    states = iter(["NEW", "RUNNING", "FINISHED"])

    def fake_request(**kwargs):
        assert kwargs["url"] == TASKS_BASE + "t1"
        return Resp(200, {"id": "t1", "state": next(states)})

    with mock.patch.object(gcorecloud.requests, "request", side_effect=fake_request):
        with mock.patch.object(gcorecloud.time, "sleep") as sleep_mock:
            task = gcorecloud.wait_for_task(client, "t1", poll_interval_s=0.5, timeout_s=60)

    assert task.state == "FINISHED"
    assert sleep_mock.call_args_list == [mock.call(0.5), mock.call(0.5)]


def test_wait_for_task_raises_task_failed_with_server_error_text():
    client = gcorecloud.new_task_client(_config())
    payload = {"id": "t1", "state": "ERROR", "error": "quota exceeded for images"}

    with mock.patch.object(gcorecloud.requests, "request", return_value=Resp(200, payload)):
        with pytest.raises(gcorecloud.TaskFailedError) as exc:
            gcorecloud.wait_for_task(client, "t1", timeout_s=60)

    assert exc.value.task_id == "t1"
    assert "quota exceeded for images" in str(exc.value)
    assert not isinstance(exc.value, TimeoutError)


def test_wait_for_task_times_out_with_distinct_error():
    client = gcorecloud.new_task_client(_config())
    clock = itertools.count(0, 10)

    with mock.patch.object(
        gcorecloud.requests, "request", return_value=Resp(200, {"id": "t1", "state": "RUNNING"})
    ):
        with mock.patch.object(gcorecloud.time, "sleep"):
            with mock.patch.object(gcorecloud.time, "monotonic", side_effect=lambda: next(clock)):
                with pytest.raises(gcorecloud.TaskTimeoutError) as exc:
                    gcorecloud.wait_for_task(client, "t1", poll_interval_s=1, timeout_s=25)

    assert isinstance(exc.value, TimeoutError)
    assert not isinstance(exc.value, gcorecloud.TaskFailedError)
    assert exc.value.last_state == "RUNNING"
    assert "timed out waiting for task t1" in str(exc.value)


def test_extract_created_resource_ids_from_task():
    task = gcorecloud.Task.from_dict(
        {
            "id": "t1",
            "state": "FINISHED",
            "created_resources": {"floatingips": ["fip-9"], "images": ["img-3"]},
            "unknown_field": "ignored",
        }
    )
    assert gcorecloud.extract_floating_ip_id_from_task(task) == "fip-9"
    assert gcorecloud.extract_image_id_from_task(task) == "img-3"

    with pytest.raises(gcorecloud.GcoreCloudError):
        gcorecloud.extract_image_id_from_task(gcorecloud.Task(id="t2", state="FINISHED"))


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(gcorecloud.ValidationError):
        gcorecloud.configure_logging("LOUD")
