#!/usr/bin/python3
import sys


def main(url: str, name: str, flavor: str = "baremetal") -> int:
    """Upload a GPU image, wait for the task, and print the created image ids.

    Kept as a tiny example entrypoint so other scripts (and tests) can reuse it
    without triggering network calls at import time.
    """

    # Easiest to import gcorecloud.py if it is in the same directory as this script.
    # Credentials/project/region come from GCLOUD_* env vars or a .env file.
    import gcorecloud

    cfg = gcorecloud.ClientConfig.from_env()
    auth = gcorecloud.Authenticator(cfg)
    images = gcorecloud.new_gpu_image_client(cfg, flavor, auth=auth)
    tasks = gcorecloud.new_task_client(cfg, auth=auth)

    results = gcorecloud.upload_gpu_image(images, gcorecloud.UploadGPUImageOpts(url=url, name=name))
    for task_id in results.tasks:
        task = gcorecloud.wait_for_task(tasks, task_id)
        for image_id in (task.created_resources or {}).get("images") or []:
            print(image_id)
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        sys.stderr.write("usage: upload_gpu_image.py URL NAME [baremetal|virtual]\n")
        raise SystemExit(2)
    raise SystemExit(main(*sys.argv[1:4]))
