import os
import socket

import ray

from helpers import generate_log

log = generate_log(name=__name__)

SERVER_RAY_ADDRESS = os.environ.get("SERVER_RAY_ADDRESS")


@ray.remote
def where_am_i():
    """
    Small Ray utility used to check which node a worker is running on.
    Returns (hostname, node_ip).
    """
    return socket.gethostname(), ray.util.get_node_ip_address()


def init_ray(address: str | None = SERVER_RAY_ADDRESS) -> bool:
    """Connect to the ray cluster (or start a local one). True when this call started it."""
    if ray.is_initialized():
        return False
    ray.init(address=address, ignore_reinit_error=True, log_to_driver=False)
    log.info(f"Ray initialised ({address or 'local'})")
    return True


def shutdown_ray() -> None:
    if ray.is_initialized():
        ray.shutdown()
        log.info("Ray shut down")


def check_ray(with_ray: bool) -> None:
    if not with_ray:
        return
    if not ray.is_initialized():
        raise RuntimeError("Ray is not initialised, call init_ray() first")
    hostname, node_ip = ray.get(where_am_i.remote())
    log.info(f"Ray workers reachable on {hostname} ({node_ip})")


__all__ = ["where_am_i", "init_ray", "shutdown_ray", "check_ray", "SERVER_RAY_ADDRESS"]
