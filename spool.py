# spool.py - captured standard input, re-readable from offset 0 by every run

import logging
import os
import tempfile
import threading

log = logging.getLogger(__name__)

CHUNK_SIZE = 4 * 4096


class SpoolReader:
    """Independent read handle over the spool.

    Uses positional reads, so any number of readers can walk the file
    without disturbing each other or the writer's offset.
    """

    def __init__(self, fd):
        self.fd = fd
        self.offset = 0

    def read(self, size=CHUNK_SIZE) -> bytes:
        data = os.pread(self.fd, size, self.offset)
        self.offset += len(data)
        return data

    def __iter__(self):
        while True:
            data = self.read()
            if not data:
                return
            yield data


class Spool:
    def __init__(self, directory=None):
        # TemporaryFile is unlinked right after creation; it disappears
        # once the last descriptor is closed.
        self.file = tempfile.TemporaryFile(dir=directory)
        self.fd = self.file.fileno()
        self.size = 0
        self.eof = False
        self._thread = None

    def write(self, data: bytes):
        view = memoryview(data)
        while view:
            n = os.write(self.fd, view)
            view = view[n:]
            self.size += n

    def open_reader(self) -> SpoolReader:
        return SpoolReader(self.fd)

    def read_all(self) -> bytes:
        return b"".join(self.open_reader())

    def copy_from(self, source_fd):
        """Blocking copy of source_fd into the spool until end of stream."""
        while True:
            try:
                data = os.read(source_fd, CHUNK_SIZE)
            except OSError as e:
                log.warning("spool: reading input failed: %s", e)
                break
            if not data:
                break
            self.write(data)
        self.eof = True
        log.debug("spool: end of input after %d bytes", self.size)

    def start_writer(self, source_fd):
        """Copy source_fd into the spool on a daemon thread."""
        t = threading.Thread(target=self.copy_from, args=(source_fd,),
                             name="spool-writer", daemon=True)
        t.start()
        self._thread = t
        return t

    def join(self, timeout=None):
        if self._thread:
            self._thread.join(timeout)

    def close(self):
        self.file.close()
