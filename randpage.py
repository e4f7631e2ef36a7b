#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "pypdf",
# ]
# ///
"""
randpage.py — open a random PDF at a random page.

Scans the files and directories passed on the command line for .pdf files,
picks one at random and opens it to a random page. A nice way to make a
little incremental progress through documents that are otherwise unseen.

Browsers ignore the #page=N fragment on file:// URLs, so the chosen PDF is
served exactly once from a throwaway HTTP server on 127.0.0.1 and the
default viewer is pointed at http://127.0.0.1:<port>/<name>#page=N.

Usage:
    uv run randpage.py ~/Papers                     # walk a directory
    uv run randpage.py ~/Papers ~/Books/sicp.pdf    # several roots
    locate -i '*.pdf' | uv run randpage.py -        # paths from stdin
"""

import http.server
import logging
import os
import random
import stat
import subprocess
import sys
import threading
import time
import urllib.parse
from concurrent.futures import Future

from pypdf import PdfReader


BIND_HOST = "127.0.0.1"
STDIN_MARKER = "-"

# ─────────────────────────────────────────────────────────────────────────────
# USER CONFIGURATION
# Hard-code values here to change how documents are opened.
# ─────────────────────────────────────────────────────────────────────────────
VIEWER_COMMAND = None   # e.g. ["firefox"]; None uses the OS default handler
LOG_LEVEL      = "INFO" # e.g. "DEBUG" to see http.server's access log
# ─────────────────────────────────────────────────────────────────────────────

log = logging.getLogger("randpage")


class RandpageError(Exception):
    """Base class for everything that makes a candidate unusable."""


class WalkError(RandpageError):
    """A directory that could not be walked. Logged, never raised."""


class ReadInputError(RandpageError):
    """Standard input that could not be read. Logged, never raised."""


class ReadError(RandpageError):
    pass


class PageCountError(RandpageError):
    pass


class BindError(RandpageError):
    pass


class WriteError(RandpageError):
    pass


class LaunchError(RandpageError):
    pass


# ── Candidate collection ─────────────────────────────────────────────────────


def looks_like_pdf(name):
    return name.lower().endswith(".pdf")


def _is_regular(path):
    try:
        return stat.S_ISREG(os.lstat(path).st_mode)
    except OSError:
        return False


def walk_for_pdfs(root):
    """Return the regular .pdf files under root, in lexical walk order.

    Symlinks are not followed below the root and never count as files.
    A directory that cannot be listed is logged and skipped; the rest of
    the walk carries on.
    """
    if not os.path.isdir(root):
        try:
            os.lstat(root)
        except OSError as e:
            err = WalkError(f"{root}: {e}")
            log.error("walking path=%s err=%s", root, err)
            return []
        if _is_regular(root) and looks_like_pdf(os.path.basename(root)):
            return [root]
        return []

    def on_error(e):
        err = WalkError(f"{e.filename}: {e.strerror}")
        log.error("walking path=%s err=%s", e.filename, err)

    ret = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if looks_like_pdf(name) and _is_regular(path):
                ret.append(path)
    return ret


def read_lines(stream):
    """Return the lines of stream that name .pdf files.

    A read or decode failure is logged and whatever was read before it is
    kept.
    """
    ret = []
    try:
        for line in stream:
            line = line.rstrip("\r\n")
            if looks_like_pdf(line):
                ret.append(line)
    except (OSError, UnicodeDecodeError) as e:
        err = ReadInputError(str(e))
        log.error("reading lines err=%s", err)
    return ret


def collect(args, stdin=None):
    """Gather candidate paths for every argument, in argument order."""
    pdfs = []
    for arg in args:
        if arg == STDIN_MARKER:
            pdfs.extend(read_lines(stdin if stdin is not None else sys.stdin))
            continue
        pdfs.extend(walk_for_pdfs(arg))
    return pdfs


def shuffle(candidates, rng):
    rng.shuffle(candidates)
    return candidates


# ── Opening a document ───────────────────────────────────────────────────────


def count_pages(path):
    """Return the page count of the PDF at path.

    Raises PageCountError for anything pypdf cannot make sense of, and for
    documents without pages since there is nothing to open them to.
    """
    try:
        with open(path, "rb") as f:
            n_pages = len(PdfReader(f).pages)
    except Exception as e:
        raise PageCountError(f"{path}: {e}") from e
    if n_pages < 1:
        raise PageCountError(f"{path}: document has no pages")
    return n_pages


def pick_page(n_pages, rng):
    # randrange is 0-indexed; viewers want 1-indexed pages.
    return rng.randrange(n_pages) + 1


class OneShotHandler(http.server.BaseHTTPRequestHandler):
    """Answers requests for the one document its server holds."""

    server_version = "randpage"

    def _is_document(self):
        # Compare bytes: file names need not be valid UTF-8.
        path = urllib.parse.unquote_to_bytes(urllib.parse.urlsplit(self.path).path)
        return path == b"/" + os.fsencode(self.server.filename)

    def _send_headers(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/pdf")
        self.send_header("Content-Length", str(len(self.server.document)))
        self.end_headers()

    def _log_request(self):
        log.info(
            "http request method=%s path=%s user-agent=%s",
            self.command, self.path, self.headers.get("User-Agent"),
        )

    def do_GET(self):
        self._log_request()
        if not self._is_document():
            self.send_error(404)
            return

        try:
            self._send_headers()
            self.wfile.write(self.server.document)
            self.wfile.flush()
        except OSError as e:
            err = WriteError(f"{self.server.filename}: {e}")
            log.error("writing response body path=%s err=%s", self.server.filename, err)
            self.close_connection = True
            self.server.resolve(err)
            return
        self.server.resolve()

    def do_HEAD(self):
        self._log_request()
        if not self._is_document():
            self.send_error(404)
            return
        self._send_headers()

    def log_message(self, format, *args):
        log.debug("%s - %s", self.address_string(), format % args)


class OneShotServer(http.server.ThreadingHTTPServer):
    """Serve one in-memory document from an ephemeral loopback port.

    The socket is bound and listening once the constructor returns, so a
    viewer launched afterwards can never beat the server to the port.
    `delivered` resolves after the first complete transfer of the document,
    or with a WriteError if that transfer breaks off.

    Each connection gets its own daemon thread, so an idle preconnect from
    the browser cannot hold up the request for the document.
    """

    def __init__(self, document, filename, host=BIND_HOST):
        self.document = document
        self.filename = filename
        self.delivered = Future()
        self._resolve_lock = threading.Lock()
        super().__init__((host, 0), OneShotHandler)

    @property
    def port(self):
        return self.server_address[1]

    def url(self, page):
        host = self.server_address[0]
        name = urllib.parse.quote(os.fsencode(self.filename))
        return f"http://{host}:{self.port}/{name}#page={page}"

    def resolve(self, error=None):
        with self._resolve_lock:
            if self.delivered.done():
                return
            if error is None:
                self.delivered.set_result(None)
            else:
                self.delivered.set_exception(error)


def viewer_command(url, platform=None):
    """Build the command that hands url to the default viewer."""
    if VIEWER_COMMAND:
        return [*VIEWER_COMMAND, url]
    platform = platform or sys.platform
    if platform == "darwin":
        return ["open", url]
    if platform.startswith("win"):
        # The empty argument is start's window title.
        return ["cmd", "/c", "start", "", url]
    return ["xdg-open", url]


def launch_viewer(url):
    cmd = viewer_command(url)
    try:
        subprocess.run(cmd, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        err = LaunchError(f"{cmd[0]}: {e}")
        log.error("executing viewer url=%s err=%s", url, err)
        raise err from e


def open_pdf(path, page, launch=None):
    """Open the PDF at path to page and block until the viewer fetched it.

    There is no timeout: if nothing ever requests the document this waits
    forever. The server is shut down before returning either way.
    """
    launch = launch or launch_viewer

    try:
        with open(path, "rb") as f:
            document = f.read()
    except OSError as e:
        raise ReadError(f"{path}: {e}") from e

    try:
        server = OneShotServer(document, os.path.basename(path), BIND_HOST)
    except OSError as e:
        log.error("listening err=%s", e)
        raise BindError(str(e)) from e

    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.1}, daemon=True)
    thread.start()
    try:
        launch(server.url(page))
        server.delivered.result()
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


# ── Driver ───────────────────────────────────────────────────────────────────


def open_random(candidates, rng, page_counter=None, opener=None):
    """Try candidates from the head until one opens.

    Returns the path that was opened, or None once every candidate has
    been discarded. A discarded candidate is never retried.
    """
    page_counter = page_counter or count_pages
    opener = opener or open_pdf

    while candidates:
        path = candidates.pop(0)

        try:
            n_pages = page_counter(path)
        except PageCountError as e:
            log.info("counting pages path=%s err=%s", path, e)
            continue

        page = pick_page(n_pages, rng)
        log.info("opening pdf path=%s page=%d", path, page)

        try:
            opener(path, page)
        except RandpageError as e:
            log.error("opening pdf path=%s err=%s", path, e)
            continue

        return path

    return None


def main(argv=None, stdin=None, rng=None, launch=None):
    args = sys.argv[1:] if argv is None else argv
    rng = rng or random.Random(time.time_ns())

    pdfs = collect(args, stdin)
    log.info("found candidate pdfs count=%d", len(pdfs))
    shuffle(pdfs, rng)

    opened = open_random(pdfs, rng, opener=lambda path, page: open_pdf(path, page, launch))
    if opened is not None:
        return 0

    print("Could not find a usable PDF")
    return 1


def run():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nStopped.")
        sys.exit(130)


if __name__ == "__main__":
    run()
