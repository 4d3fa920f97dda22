import logging
import threading
from django.conf import settings
from django.db import connection

logger = logging.getLogger('apps')


def run_in_background(func, *args, name: str = 'signing-task', **kwargs) -> None:
    """Runs func in a daemon thread, or inline when SIGNING_RUN_IN_BACKGROUND is off.

    Failures are logged and never reach the caller.
    """
    if not getattr(settings, 'SIGNING_RUN_IN_BACKGROUND', True):
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.error(f'Task {name} failed: {str(e)}')
        return

    def target():
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.error(f'Background task {name} failed: {str(e)}')
        finally:
            # threads get their own DB connection
            connection.close()

    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()
