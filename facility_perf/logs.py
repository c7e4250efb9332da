"""Console logging shared by the cache, request manager and dashboard state."""


def log(msg: str) -> None:
    """Print with flush for reliable output from worker threads and event-loop callbacks."""
    print(msg, flush=True)
