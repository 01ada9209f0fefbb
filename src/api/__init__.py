from api.ray_utils import (
    where_am_i,
    init_ray,
    shutdown_ray,
    check_ray,
    SERVER_RAY_ADDRESS,
)

__all__ = [
    "where_am_i",
    "init_ray",
    "shutdown_ray",
    "check_ray",
    "SERVER_RAY_ADDRESS",
]
