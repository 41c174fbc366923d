#!/usr/bin/python3
import argparse
import json
import math
import os
import sys
import tempfile
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path

import requests

import gcorecloud

_DEFAULT_WAIT_SECONDS = 3600.0
_DEFAULT_POLL_INTERVAL_S = 1.0

_FLOATING_IP_COLUMNS = ["id", "floating_ip_address", "fixed_ip_address", "port_id", "status"]
_IMAGE_COLUMNS = ["id", "name", "status", "os_type", "architecture"]
_TASK_COLUMNS = ["id", "state", "task_type", "error"]

_DOCTOR_REQUIRED = ["GCLOUD_PROJECT", "GCLOUD_REGION"]
_DOCTOR_CREDENTIALS = [
    "GCLOUD_API_TOKEN",
    "GCLOUD_USERNAME",
    "GCLOUD_PASSWORD",
    "GCLOUD_ACCESS_TOKEN",
    "GCLOUD_REFRESH_TOKEN",
]
_DOCTOR_OPTIONAL = ["GCLOUD_API_URL", "GCLOUD_AUTH_URL", "GCLOUD_CLIENT_TYPE"]
_DOCTOR_SECRETS = {
    "GCLOUD_API_TOKEN",
    "GCLOUD_PASSWORD",
    "GCLOUD_ACCESS_TOKEN",
    "GCLOUD_REFRESH_TOKEN",
}


def _json_default(obj):
    # Typed SDK results expose as_dict(); anything else falls back to str().
    as_dict = getattr(obj, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    return str(obj)


def _parse_http_timeout(value: str) -> tuple[float, float]:
    """
    Parse `--http-timeout` as either:
      - "read" (seconds) -> (10, read)
      - "connect,read" (seconds) -> (connect, read)
    """
    raw = (value or "").strip()
    if not raw:
        raise argparse.ArgumentTypeError("empty timeout")

    try:
        if "," in raw:
            parts = [p.strip() for p in raw.split(",", 1)]
            if not parts[0] or not parts[1]:
                raise argparse.ArgumentTypeError(f"invalid timeout format: {value!r}")
            connect_s = float(parts[0])
            read_s = float(parts[1])
        else:
            connect_s = 10.0
            read_s = float(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid timeout: {value!r}") from e

    if not math.isfinite(connect_s) or not math.isfinite(read_s):
        raise argparse.ArgumentTypeError("timeouts must be finite")
    if connect_s <= 0 or read_s <= 0:
        raise argparse.ArgumentTypeError("timeouts must be > 0")
    return (connect_s, read_s)


def _positive_float(value: str) -> float:
    try:
        cooked = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e
    if not math.isfinite(cooked) or cooked <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return cooked


def _cli_version() -> str:
    # Prefer the installed distribution version, but fall back to the helper's `_VERSION`
    # when running directly from a checkout.
    try:
        return pkg_version("gcorecloud")
    except PackageNotFoundError:
        return str(getattr(gcorecloud, "_VERSION", "unknown"))


def _atomic_write_text(path: Path, data: str, *, encoding: str = "utf-8") -> None:
    """
    Best-effort atomic file write.

    Write to a temp file in the destination directory, then replace the final path. This avoids
    leaving partially-written output files if the process is interrupted mid-write.
    """
    tmp_fh = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        newline="\n",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_fh.name)
    try:
        with tmp_fh:
            tmp_fh.write(data)
            tmp_fh.flush()
            try:
                os.fsync(tmp_fh.fileno())
            except OSError:
                # Some filesystems may not support fsync; atomic replace still helps.
                pass
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _write_json(path: Path | None, payload, *, pretty: bool) -> None:
    if pretty:
        data = json.dumps(payload, indent=2, default=_json_default, sort_keys=True)
    else:
        data = json.dumps(payload, default=_json_default, sort_keys=True, separators=(",", ":"))
    if path is None:
        sys.stdout.write(data + "\n")
    else:
        _atomic_write_text(path, data + "\n", encoding="utf-8")


def _write_lines(path: Path | None, lines: list[str]) -> None:
    if path is None:
        for line in lines:
            sys.stdout.write(str(line) + "\n")
        return
    _atomic_write_text(path, "".join(f"{line}\n" for line in lines), encoding="utf-8")


def _resolve_out_path(value: str) -> Path | None:
    if not value or value == "-":
        return None
    return Path(value)


def _resolve_cli_log_level(args) -> str | None:
    if getattr(args, "log_level", ""):
        return args.log_level
    verbose = getattr(args, "verbose", 0) or 0
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return None


def _rows_to_tab_lines(rows: list[dict], columns: list[str]) -> list[str]:
    lines = []
    for row in rows:
        fields = []
        for col in columns:
            v = row.get(col)
            # Collapse tabs/newlines so each row stays one tab-separated line.
            fields.append(" ".join(str(v).split()) if v is not None else "")
        lines.append("\t".join(fields))
    return lines


def _as_row(item) -> dict:
    if isinstance(item, dict):
        return item
    as_dict = getattr(item, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    return {"id": item}


def _emit(args, payload, columns: list[str]) -> None:
    """Write a command result; `None` means there is nothing to show."""
    if payload is None:
        return
    out_path = _resolve_out_path(getattr(args, "out", ""))
    if getattr(args, "format", "json") == "json":
        _write_json(out_path, payload, pretty=True)
        return
    if isinstance(payload, dict) and set(payload) == {"tasks"}:
        _write_lines(out_path, [str(t) for t in payload["tasks"]])
        return
    rows = payload if isinstance(payload, list) else [payload]
    _write_lines(out_path, _rows_to_tab_lines([_as_row(r) for r in rows], columns))


def _format_cli_error(label: str, exc: Exception) -> str:
    status = getattr(exc, "status_code", None)
    if status is None:
        return f"{label} failed: {gcorecloud.redact_sensitive_text(str(exc))}"

    parts = [f"{label} failed:", f"status={status}"]
    try:
        body = json.loads(getattr(exc, "text", "") or "")
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error") if isinstance(body.get("error"), dict) else body
        code = err.get("code") or err.get("exception_class")
        message = err.get("message")
        if code:
            parts.append(f"code={code}")
        if message:
            parts.append(f"message={message}")
        if not code and not message:
            text = " ".join(str(getattr(exc, "text", "") or "").split())
            if text:
                parts.append(f"body={text[:500]}")
    else:
        text = " ".join(str(getattr(exc, "text", "") or "").split())
        if text:
            parts.append(f"message={text[:500]}")
    return gcorecloud.redact_sensitive_text(" ".join(parts))


def wait_task_and_show_result(args, client, task_results, show_result_on_success, extractor):
    """
    Wait for every task in `task_results` and collect what `extractor` makes of each.

    Tasks are awaited one after another. The first task that ends in ERROR raises
    `TaskFailedError` and the remaining tasks are not polled; a task with no terminal state
    within `--wait-seconds` raises `TaskTimeoutError`.

    `extractor(task_id, task)` runs exactly once per finished task. Returns None when
    `show_result_on_success` is false, the single extracted value for a one-task set, otherwise
    the list of extracted values. With `--no-wait` nothing is polled and the task ids are
    returned as-is.
    """
    # A task id listed twice is awaited and extracted once.
    task_ids = list(dict.fromkeys(task_results.tasks))
    if getattr(args, "no_wait", False):
        return {"tasks": task_ids}

    results = []
    for task_id in task_ids:
        task = gcorecloud.wait_for_task(
            client,
            task_id,
            poll_interval_s=args.poll_interval_s,
            timeout_s=args.wait_seconds,
        )
        gcorecloud.logger.info("task %s finished", task_id)
        result = extractor(task_id, task)
        if show_result_on_success:
            results.append(result)

    if not show_result_on_success:
        return None
    if len(results) == 1:
        return results[0]
    return results


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )
    p.add_argument("--out", default="", help="Output path (default: stdout)")
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable; maps to INFO/DEBUG)",
    )
    p.add_argument(
        "--log-level",
        default="",
        help="Set log level (DEBUG/INFO/WARNING/ERROR/CRITICAL). Overrides -v/--verbose.",
    )
    p.add_argument("--api-url", default=None, help="API base URL (default: env GCLOUD_API_URL)")
    p.add_argument("--auth-url", default=None, help="Auth base URL (default: env GCLOUD_AUTH_URL)")
    p.add_argument("--project", type=int, default=None, help="Project id (default: env GCLOUD_PROJECT)")
    p.add_argument("--region", type=int, default=None, help="Region id (default: env GCLOUD_REGION)")
    p.add_argument(
        "--client-type",
        choices=list(gcorecloud.CLIENT_TYPES),
        default=None,
        help="Auth flow (default: env GCLOUD_CLIENT_TYPE or inferred from credentials)",
    )
    p.add_argument(
        "--http-timeout",
        type=_parse_http_timeout,
        default=None,
        help="HTTP timeouts in seconds: 'read' or 'connect,read' (default: 10,60)",
    )
    p.add_argument("--no-retry", action="store_true", help="Disable HTTP retry/backoff")
    p.add_argument("--max-retry", type=int, default=None, help="Max retry attempts (default: 5)")
    p.add_argument(
        "--backoff-max-s", type=float, default=None, help="Max backoff seconds (default: 30)"
    )


def _add_wait_args(p: argparse.ArgumentParser, *, allow_no_wait: bool = True) -> None:
    if allow_no_wait:
        p.add_argument(
            "--no-wait",
            action="store_true",
            help="Print task ids instead of waiting for the tasks to finish",
        )
    p.add_argument(
        "--wait-seconds",
        type=_positive_float,
        default=_DEFAULT_WAIT_SECONDS,
        help="Maximum seconds to wait for each task (default: 3600)",
    )
    p.add_argument(
        "--poll-interval-s",
        type=_positive_float,
        default=_DEFAULT_POLL_INTERVAL_S,
        help="Task polling interval seconds (default: 1)",
    )


def _leaf(sub, name: str, label: str, help_: str) -> argparse.ArgumentParser:
    p = sub.add_parser(name, help=help_)
    _add_common_args(p)
    p.set_defaults(label=label)
    return p


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gcorecloud",
        description="Small CLI for Gcore Cloud floating IPs, GPU images and tasks.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {_cli_version()}")
    sub = p.add_subparsers(dest="cmd", required=True)

    doctor = _leaf(sub, "doctor", "doctor", "Environment/auth sanity checks (non-destructive)")
    doctor.add_argument(
        "--probe",
        action="store_true",
        help="Attempt a tiny probe (list floating IPs). Requires env credentials.",
    )

    fip = sub.add_parser("floatingip", help="Floating IP operations")
    fip_sub = fip.add_subparsers(dest="floatingip_cmd", required=True)

    _leaf(fip_sub, "list", "floatingip list", "List floating IPs")

    fip_get = _leaf(fip_sub, "get", "floatingip get", "Get a floating IP")
    fip_get.add_argument("floating_ip_id", help="Floating IP id")

    fip_create = _leaf(fip_sub, "create", "floatingip create", "Create a floating IP")
    fip_create.add_argument("--port-id", required=True, help="Port id to attach to")
    fip_create.add_argument("--fixed-ip-address", required=True, help="Fixed IP address of the port")
    _add_wait_args(fip_create)

    fip_delete = _leaf(fip_sub, "delete", "floatingip delete", "Delete a floating IP")
    fip_delete.add_argument("floating_ip_id", help="Floating IP id")
    _add_wait_args(fip_delete)

    fip_assign = _leaf(fip_sub, "assign", "floatingip assign", "Assign a floating IP to a port")
    fip_assign.add_argument("floating_ip_id", help="Floating IP id")
    fip_assign.add_argument("--port-id", required=True, help="Port id to attach to")
    fip_assign.add_argument("--fixed-ip-address", required=True, help="Fixed IP address of the port")

    fip_unassign = _leaf(fip_sub, "unassign", "floatingip unassign", "Unassign a floating IP")
    fip_unassign.add_argument("floating_ip_id", help="Floating IP id")

    gpu = sub.add_parser("gpu", help="GPU resource operations")
    gpu_sub = gpu.add_subparsers(dest="gpu_flavor", required=True)
    for flavor in gcorecloud.GPU_CLUSTER_FLAVORS:
        flavor_p = gpu_sub.add_parser(flavor, help=f"Manage {flavor} GPU resources")
        flavor_sub = flavor_p.add_subparsers(dest="gpu_resource", required=True)
        images = flavor_sub.add_parser("images", help=f"{flavor.capitalize()} GPU images")
        images_sub = images.add_subparsers(dest="images_cmd", required=True)

        upload = _leaf(
            images_sub,
            "upload",
            f"gpu {flavor} images upload",
            f"Upload a new {flavor} GPU image from a URL",
        )
        upload.add_argument("--url", required=True, help="Image URL")
        upload.add_argument("--name", required=True, help="Image name")
        upload.add_argument(
            "--ssh-key",
            choices=list(gcorecloud.SSH_KEY_TYPES),
            default=None,
            help="Permission to use SSH key in instances",
        )
        upload.add_argument(
            "--cow-format",
            action="store_true",
            help="Image cannot be deleted unless all volumes created from it are deleted",
        )
        upload.add_argument(
            "--architecture",
            choices=list(gcorecloud.ARCHITECTURES),
            default=None,
            help="Image architecture type",
        )
        upload.add_argument("--os-distro", default=None, help="OS distribution (Debian/Ubuntu/...)")
        upload.add_argument(
            "--os-type", choices=list(gcorecloud.OS_TYPES), default=None, help="Operating system type"
        )
        upload.add_argument("--os-version", default=None, help="OS version")
        upload.add_argument(
            "--hw-firmware-type",
            choices=list(gcorecloud.HW_FIRMWARE_TYPES),
            default=None,
            help="Type of firmware for booting the guest",
        )
        upload.add_argument(
            "--metadata",
            action="append",
            default=[],
            help="Image metadata key=value (repeatable)",
        )
        _add_wait_args(upload)

        _leaf(images_sub, "list", f"gpu {flavor} images list", f"List {flavor} GPU images")

        image_get = _leaf(images_sub, "get", f"gpu {flavor} images get", "Get a GPU image")
        image_get.add_argument("image_id", help="Image id")

        image_delete = _leaf(images_sub, "delete", f"gpu {flavor} images delete", "Delete a GPU image")
        image_delete.add_argument("image_id", help="Image id")
        _add_wait_args(image_delete)

    tasks = sub.add_parser("tasks", help="Async task operations")
    tasks_sub = tasks.add_subparsers(dest="tasks_cmd", required=True)

    tasks_get = _leaf(tasks_sub, "get", "tasks get", "Get task details")
    tasks_get.add_argument("task_id", help="Task id")

    tasks_list = _leaf(tasks_sub, "list", "tasks list", "List tasks for the project/region")
    tasks_list.add_argument(
        "--state",
        choices=["NEW", "RUNNING", "FINISHED", "ERROR"],
        default=None,
        help="Only list tasks in this state",
    )

    tasks_wait = _leaf(tasks_sub, "wait", "tasks wait", "Wait for tasks to reach a terminal state")
    tasks_wait.add_argument("task_ids", nargs="+", help="Task id(s)")
    _add_wait_args(tasks_wait, allow_no_wait=False)

    return p


def _build_config(args) -> gcorecloud.ClientConfig:
    return gcorecloud.ClientConfig.from_env(
        api_url=args.api_url,
        auth_url=args.auth_url,
        project_id=args.project,
        region_id=args.region,
        client_type=args.client_type,
        http_timeout=args.http_timeout,
        retry=False if args.no_retry else None,
        max_retry=args.max_retry,
        backoff_max_s=args.backoff_max_s,
    )


def _run_doctor(args) -> int:
    dotenv_path = gcorecloud.load_env_file()

    env_state = {}
    for k in _DOCTOR_REQUIRED + _DOCTOR_CREDENTIALS + _DOCTOR_OPTIONAL:
        v = os.getenv(k)
        if k in _DOCTOR_SECRETS:
            # Never echo secrets in diagnostics.
            env_state[k] = {"set": bool(v)}
        else:
            env_state[k] = {"set": bool(v), "value": (v if v else "")}

    missing_required = [k for k in _DOCTOR_REQUIRED if not env_state[k]["set"]]
    has_credentials = (
        env_state["GCLOUD_API_TOKEN"]["set"]
        or env_state["GCLOUD_ACCESS_TOKEN"]["set"]
        or env_state["GCLOUD_REFRESH_TOKEN"]["set"]
        or (env_state["GCLOUD_USERNAME"]["set"] and env_state["GCLOUD_PASSWORD"]["set"])
    )

    payload = {
        "ok": not missing_required and has_credentials,
        "cwd": str(Path.cwd()),
        "dotenv": dotenv_path or "",
        "checks": {
            "env": {
                "missing_required": missing_required,
                "credentials": has_credentials,
                "required": _DOCTOR_REQUIRED,
                "optional": _DOCTOR_OPTIONAL,
                "values": env_state,
            }
        },
    }

    if args.probe and payload["ok"]:
        try:
            cfg = _build_config(args)
            client = gcorecloud.new_service_client(cfg, "floatingips", "v1")
            fips = gcorecloud.list_all_floating_ips(client)
            payload["checks"]["probe"] = {"ok": True, "floating_ips": {"count": len(fips)}}
        except (gcorecloud.GcoreCloudError, requests.RequestException) as e:
            payload["ok"] = False
            payload["checks"]["probe"] = {
                "ok": False,
                "error": gcorecloud.redact_sensitive_text(str(e)),
            }

    out_path = _resolve_out_path(args.out)
    if args.format == "json":
        _write_json(out_path, payload, pretty=True)
    else:
        lines = [f"ok: {str(payload['ok']).lower()}"]
        if payload["dotenv"]:
            lines.append(f"dotenv: {payload['dotenv']}")
        if missing_required:
            lines.append("missing required env vars: " + ", ".join(missing_required))
        if not has_credentials:
            lines.append(
                "missing credentials: set GCLOUD_API_TOKEN, GCLOUD_USERNAME/GCLOUD_PASSWORD"
                " or GCLOUD_ACCESS_TOKEN/GCLOUD_REFRESH_TOKEN"
            )
        probe = payload["checks"].get("probe")
        if probe is not None:
            if probe["ok"]:
                lines.append(f"probe: ok (floating_ips={probe['floating_ips']['count']})")
            else:
                lines.append(f"probe: failed ({probe['error']})")
        _write_lines(out_path, lines)

    return 0 if payload["ok"] else 1


def _run_floatingip(args) -> int:
    cfg = _build_config(args)
    auth = gcorecloud.Authenticator(cfg)
    client = gcorecloud.new_service_client(cfg, "floatingips", "v1", auth=auth)

    if args.floatingip_cmd == "list":
        _emit(args, gcorecloud.list_all_floating_ips(client), _FLOATING_IP_COLUMNS)
        return 0

    if args.floatingip_cmd == "get":
        _emit(args, gcorecloud.get_floating_ip(client, args.floating_ip_id), _FLOATING_IP_COLUMNS)
        return 0

    if args.floatingip_cmd == "create":
        opts = gcorecloud.CreateFloatingIPOpts(
            port_id=args.port_id, fixed_ip_address=args.fixed_ip_address
        )
        results = gcorecloud.create_floating_ip(client, opts)
        task_client = gcorecloud.new_task_client(cfg, auth=auth)

        def _created_floating_ip(_task_id, task):
            floating_ip_id = gcorecloud.extract_floating_ip_id_from_task(task)
            return gcorecloud.get_floating_ip(client, floating_ip_id)

        payload = wait_task_and_show_result(args, task_client, results, True, _created_floating_ip)
        _emit(args, payload, _FLOATING_IP_COLUMNS)
        return 0

    if args.floatingip_cmd == "delete":
        results = gcorecloud.delete_floating_ip(client, args.floating_ip_id)
        task_client = gcorecloud.new_task_client(cfg, auth=auth)

        def _confirm_deleted(_task_id, _task):
            try:
                gcorecloud.get_floating_ip(client, args.floating_ip_id)
            except gcorecloud.NotFoundError:
                return None
            raise gcorecloud.GcoreCloudError(
                f"cannot delete floating IP with ID: {args.floating_ip_id}"
            )

        payload = wait_task_and_show_result(args, task_client, results, False, _confirm_deleted)
        _emit(args, payload, _FLOATING_IP_COLUMNS)
        return 0

    if args.floatingip_cmd == "assign":
        opts = gcorecloud.CreateFloatingIPOpts(
            port_id=args.port_id, fixed_ip_address=args.fixed_ip_address
        )
        fip = gcorecloud.assign_floating_ip(client, args.floating_ip_id, opts)
        _emit(args, fip, _FLOATING_IP_COLUMNS)
        return 0

    if args.floatingip_cmd == "unassign":
        fip = gcorecloud.unassign_floating_ip(client, args.floating_ip_id)
        _emit(args, fip, _FLOATING_IP_COLUMNS)
        return 0

    sys.stderr.write("unknown floatingip command\n")
    return 1


def _run_gpu(args) -> int:
    if args.images_cmd == "upload":
        # Validate local input before touching config/auth or the network.
        opts = gcorecloud.UploadGPUImageOpts(
            url=args.url,
            name=args.name,
            ssh_key=args.ssh_key,
            cow_format=args.cow_format,
            architecture=args.architecture,
            os_distro=args.os_distro,
            os_type=args.os_type,
            os_version=args.os_version,
            hw_firmware_type=args.hw_firmware_type,
            metadata=gcorecloud.parse_metadata(args.metadata) or None,
        )
        opts.to_request_body()

    cfg = _build_config(args)
    auth = gcorecloud.Authenticator(cfg)
    client = gcorecloud.new_gpu_image_client(cfg, args.gpu_flavor, auth=auth)

    if args.images_cmd == "upload":
        results = gcorecloud.upload_gpu_image(client, opts)
        task_client = gcorecloud.new_task_client(cfg, auth=auth)

        def _uploaded_image(task_id, task):
            if not (task.created_resources or {}).get("images"):
                return task_id
            return gcorecloud.get_gpu_image(client, gcorecloud.extract_image_id_from_task(task))

        payload = wait_task_and_show_result(args, task_client, results, True, _uploaded_image)
        _emit(args, payload, _IMAGE_COLUMNS)
        return 0

    if args.images_cmd == "list":
        _emit(args, gcorecloud.list_gpu_images(client), _IMAGE_COLUMNS)
        return 0

    if args.images_cmd == "get":
        _emit(args, gcorecloud.get_gpu_image(client, args.image_id), _IMAGE_COLUMNS)
        return 0

    if args.images_cmd == "delete":
        results = gcorecloud.delete_gpu_image(client, args.image_id)
        task_client = gcorecloud.new_task_client(cfg, auth=auth)
        payload = wait_task_and_show_result(
            args, task_client, results, False, lambda _task_id, _task: None
        )
        _emit(args, payload, _IMAGE_COLUMNS)
        return 0

    sys.stderr.write("unknown gpu images command\n")
    return 1


def _run_tasks(args) -> int:
    cfg = _build_config(args)
    client = gcorecloud.new_task_client(cfg)

    if args.tasks_cmd == "get":
        _emit(args, gcorecloud.get_task(client, args.task_id), _TASK_COLUMNS)
        return 0

    if args.tasks_cmd == "list":
        project_id, region_id = cfg.require_scope()
        tasks = gcorecloud.list_tasks(client, project_id, region_id, state=args.state)
        _emit(args, tasks, _TASK_COLUMNS)
        return 0

    if args.tasks_cmd == "wait":
        results = gcorecloud.TaskResults(tasks=list(args.task_ids))
        payload = wait_task_and_show_result(
            args, client, results, True, lambda _task_id, task: task
        )
        _emit(args, payload, _TASK_COLUMNS)
        return 0

    sys.stderr.write("unknown tasks command\n")
    return 1


def main(argv: list[str] | None = None) -> int:
    try:
        args = build_parser().parse_args(argv)
    except SystemExit as e:
        # --help/--version exit 0; usage errors (argparse uses 2) map to 1.
        return 0 if not e.code else 1

    level = _resolve_cli_log_level(args)
    label = getattr(args, "label", args.cmd)
    try:
        if level:
            gcorecloud.configure_logging(level)

        if args.cmd == "doctor":
            return _run_doctor(args)
        if args.cmd == "floatingip":
            return _run_floatingip(args)
        if args.cmd == "gpu":
            return _run_gpu(args)
        if args.cmd == "tasks":
            return _run_tasks(args)
    except (gcorecloud.GcoreCloudError, requests.RequestException, OSError) as e:
        sys.stderr.write(_format_cli_error(label, e) + "\n")
        return 1

    sys.stderr.write("unknown command\n")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
