import threading

from exceptions import JobTimeout


def start_daemon_thread(target, args=(), kwargs=None, name=None):
    """Start a daemon thread with a consistent helper API."""
    thread = threading.Thread(target=target, args=args, kwargs=kwargs or {}, daemon=True, name=name)
    thread.start()
    return thread


def run_app_context_job(app, target, args=(), kwargs=None, timeout=None, name=None):
    """
    Run a callable inside the provided Flask app context and return its result.

    Without a timeout the call is made inline. With one, it runs in a daemon thread
    and JobTimeout is raised if it has not returned after `timeout` seconds; the
    thread itself cannot be stopped and is left to finish on its own.
    """
    if not timeout:
        with app.app_context():
            return target(*args, **(kwargs or {}))

    outcome = {}

    def _run():
        with app.app_context():
            try:
                outcome['result'] = target(*args, **(kwargs or {}))
            except Exception as exc:
                outcome['error'] = exc

    thread = start_daemon_thread(_run, name=name)
    thread.join(timeout)
    if thread.is_alive():
        raise JobTimeout(f"{name or 'job'} did not finish within {timeout} seconds")
    if 'error' in outcome:
        raise outcome['error']
    return outcome.get('result')
