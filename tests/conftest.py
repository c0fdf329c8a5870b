import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from pytest_socket import disable_socket, enable_socket


def pytest_runtest_setup(item):
    """
    Runs before every test.
    Network access is disabled unless the test is marked enable_socket;
    any other attempt to connect raises SocketBlockedError.
    """
    if item.get_closest_marker("enable_socket"):
        enable_socket()
        return
    disable_socket(allow_unix_socket=True)


class _TrickleHandler(BaseHTTPRequestHandler):
    """Sends headers at once, then one body byte every 50 ms, never finishing."""

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", "100000")
        self.end_headers()
        try:
            while not self.server.stop.is_set():
                self.wfile.write(b" ")
                self.wfile.flush()
                time.sleep(0.05)
        except OSError:
            return

    def log_message(self, format, *args):
        return


@pytest.fixture
def trickle_server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _TrickleHandler)
    httpd.daemon_threads = True
    httpd.stop = threading.Event()
    threading.Thread(target=httpd.serve_forever, daemon=True).start()
    try:
        yield f"127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.stop.set()
        httpd.shutdown()
        httpd.server_close()
