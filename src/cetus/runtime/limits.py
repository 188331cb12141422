import resource

from cetus.utils.diagnostics import ResourceError


def get_fdlimit() -> int:
    soft, _hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    return soft


def set_fdlimit(max_files: int) -> int:
    """
    Raise (or lower) the soft open-files limit. The hard limit is raised
    too when needed, which only succeeds with the right privileges.
    """
    if max_files <= 0:
        raise ResourceError(f"setting fdlimit = {max_files} failed: limit must be positive")

    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    new_hard = hard
    if hard != resource.RLIM_INFINITY and max_files > hard:
        new_hard = max_files

    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (max_files, new_hard))
    except OSError as exc:
        raise ResourceError(f"setting fdlimit = {max_files} failed", exc) from exc
    except ValueError as exc:
        raise ResourceError(f"setting fdlimit = {max_files} failed: {exc}") from exc

    return get_fdlimit()
