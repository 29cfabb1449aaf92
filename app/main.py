import argparse
import os
import faulthandler
import logging
import sys
import traceback
from PyQt6.QtWidgets import QApplication
from engine.config import EngineConfig
from ui.main_window import MainWindow

_FAULT_LOG_HANDLE = None

def _install_exception_logging() -> None:
    log_path = os.path.join(os.path.dirname(__file__), "exception.log")
    def _hook(exc_type, exc_value, exc_tb):
        try:
            with open(log_path, "a", encoding="utf-8") as handle:
                handle.write("\n=== Unhandled Exception ===\n")
                traceback.print_exception(exc_type, exc_value, exc_tb, file=handle)
        except OSError:
            pass
        sys.__excepthook__(exc_type, exc_value, exc_tb)
    sys.excepthook = _hook
    import threading
    def _thread_hook(args):
        _hook(args.exc_type, args.exc_value, args.exc_traceback)
    threading.excepthook = _thread_hook


def main(argv=None):
    ap = argparse.ArgumentParser(description="Portfolio value chart with two-point measurement.")
    ap.add_argument("--ticker", help="Chart a single ticker instead of the portfolio")
    ap.add_argument("--api-url", help="API base URL (default: $VALUECHART_API_URL or http://127.0.0.1:3001/api)")
    ap.add_argument("--verbose", action="store_true")
    args, qt_args = ap.parse_known_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        log_path = os.path.join(os.path.dirname(__file__), "faulthandler.log")
        # Keep the handle alive for the process lifetime; faulthandler may write later.
        global _FAULT_LOG_HANDLE
        # Overwrite each run so logs reflect the current crash, not stale history.
        _FAULT_LOG_HANDLE = open(log_path, "w", encoding="utf-8")
        _FAULT_LOG_HANDLE.write(f"pid={os.getpid()}\n")
        _FAULT_LOG_HANDLE.flush()
        faulthandler.enable(_FAULT_LOG_HANDLE, all_threads=True)
    except OSError:
        faulthandler.enable(all_threads=True)
    _install_exception_logging()

    environ = dict(os.environ)
    if args.api_url:
        environ["VALUECHART_API_URL"] = args.api_url
    config = EngineConfig.from_env(environ)
    app = QApplication([sys.argv[0], *qt_args])
    window = MainWindow(config=config, ticker=args.ticker)
    window.show()
    return app.exec()

if __name__ == '__main__':
    sys.exit(main())
