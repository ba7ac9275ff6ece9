"""Pytest configuration and fixtures."""

import http.server
import io
import socketserver
import threading
from urllib.parse import parse_qs, urlparse

import pytest
from PIL import Image

from wms_bodies.models.request_context import RequestContext


def make_png(color, size=(8, 4)) -> bytes:
    """Encode a solid-color RGBA image as PNG bytes."""
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def wms_server():
    """
    Fixture for creating a local WMS server for testing.

    Serves solid-color PNGs keyed by the TIME query parameter and answers
    400 for times it does not know, like a WMS server outside its time
    dimension. Requests without TIME get the static image, if one is set.

    Usage:
        def test_fetch(wms_server):
            wms_server.add_time("2020-01-02", (255, 0, 0, 255))
            url = wms_server.url
            ...

    Attributes:
        port (int): The port the server is listening on
        url (str): GetMap base URL, without WIDTH/HEIGHT/LAYERS/TIME
        requests (list): TIME value of every request received (None for static)
    """

    class WMSServer:
        def __init__(self, port):
            self.port = port
            self.images = {}
            self.static_image = None
            self.requests = []
            self._lock = threading.Lock()

        @property
        def url(self):
            """GetMap base URL for this server."""
            return f"http://127.0.0.1:{self.port}/wms?SERVICE=WMS&REQUEST=GetMap&FORMAT=image/png"

        def add_time(self, time, color, size=(8, 4)):
            """Serve a solid-color image for a TIME value."""
            self.images[time] = make_png(color, size)

        def add_raw(self, time, body: bytes):
            """Serve arbitrary bytes (e.g. a corrupt image) for a TIME value."""
            self.images[time] = body

        def set_static(self, color, size=(8, 4)):
            """Serve a solid-color image for requests without TIME."""
            self.static_image = make_png(color, size)

        def record(self, time):
            with self._lock:
                self.requests.append(time)

        def request_count(self, time=None):
            """Number of requests received, optionally only for one TIME value."""
            with self._lock:
                if time is None:
                    return len(self.requests)
                return self.requests.count(time)

    class WMSRequestHandler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            params = parse_qs(urlparse(self.path).query)
            time = params.get("TIME", [None])[0]
            server_state.record(time)

            body = server_state.static_image if time is None else server_state.images.get(time)
            if body is None:
                self.send_response(400)
                self.send_header("Content-Type", "application/vnd.ogc.se_xml")
                self.end_headers()
                self.wfile.write(b"<ServiceExceptionReport>InvalidDimensionValue</ServiceExceptionReport>")
                return

            self.send_response(200)
            self.send_header("Content-Type", "image/png")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass  # Suppress logging during tests

    class ThreadingServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
        daemon_threads = True

    # Start server on auto-assigned port
    server = ThreadingServer(("127.0.0.1", 0), WMSRequestHandler)
    server_state = WMSServer(server.server_address[1])

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server_state

    # Cleanup: shutdown server
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


@pytest.fixture
def background_path(tmp_path):
    """A small opaque background texture."""
    path = tmp_path / "background.png"
    Image.new("RGB", (8, 4), (0, 0, 255)).save(path)
    return path


@pytest.fixture
def request_context(wms_server, background_path):
    """Request context pointing at the local WMS server."""
    return RequestContext(
        request_template=f"{wms_server.url}&WIDTH=8&HEIGHT=4&LAYERS=clouds",
        layer_name="clouds",
        fallback_path=background_path,
    )
