import logging
import signal
import threading

from ordergate.app import OrdergateApp
from ordergate.logging_config import configure_logging


logger = logging.getLogger("ordergate.main")


def main():
    configure_logging()
    app = OrdergateApp()
    stop_event = threading.Event()

    def _reload(_signum, _frame):
        logger.info("Reload requested, refreshing product mappings")
        app.reload_products()

    def _stop(_signum, _frame):
        stop_event.set()

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _reload)
    signal.signal(signal.SIGTERM, _stop)

    app.start()
    try:
        while not stop_event.is_set():
            stop_event.wait(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Ordergate stopped by user")
    finally:
        app.stop()


if __name__ == "__main__":
    main()
