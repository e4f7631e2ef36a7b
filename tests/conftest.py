"""
Pytest configuration and fixtures.
"""

import http.client
import random
import urllib.parse

import pytest
from pypdf import PdfWriter


def fetch(url, method="GET"):
    """Request url straight from the loopback server, bypassing any proxy."""
    parts = urllib.parse.urlsplit(url)
    conn = http.client.HTTPConnection(parts.hostname, parts.port, timeout=5)
    try:
        conn.request(method, parts.path)
        resp = conn.getresponse()
        return resp.status, dict(resp.getheaders()), resp.read()
    finally:
        conn.close()


class FetchingLauncher:
    """Stands in for the OS viewer: records the URL and downloads it."""

    def __init__(self, extra_paths=()):
        self.urls = []
        self.responses = []
        self.extra_paths = extra_paths

    def __call__(self, url):
        self.urls.append(url)
        parts = urllib.parse.urlsplit(url)
        base = f"{parts.scheme}://{parts.netloc}"
        for path in self.extra_paths:
            self.responses.append(fetch(base + path))
        self.responses.append(fetch(url))


class NoShuffle(random.Random):
    """A seeded generator whose shuffle keeps the collected order."""

    def shuffle(self, x):
        pass


@pytest.fixture
def make_pdf(tmp_path):
    """Write a blank PDF with the given number of pages and return its path."""

    def _make(name, pages=1, directory=None):
        path = (directory or tmp_path) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        writer = PdfWriter()
        for _ in range(pages):
            writer.add_blank_page(width=72, height=72)
        with open(path, "wb") as f:
            writer.write(f)
        return path

    return _make


@pytest.fixture
def launcher():
    return FetchingLauncher()
