import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Optional

from vpnportal.exception import StoreError
from vpnportal.message import DiscoveryDocument

logger = logging.getLogger(__name__)


class DiscoveryStore(object):
    """
    Keeps the last verified copy of every discovery document, one file per source.
    The files hold the verified bytes exactly as they were received.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def cache_path(self, source) -> str:
        return os.path.join(self.data_dir, source.cache_name)

    def load_raw(self, source) -> Optional[bytes]:
        try:
            with open(self.cache_path(source), "rb") as fp:
                return fp.read()
        except FileNotFoundError:
            return None
        except OSError as err:
            raise StoreError(f"Unable to read '{self.cache_path(source)}': {err}")

    def load(self, source) -> Optional[DiscoveryDocument]:
        """
        Read the stored document of a source.

        :param source: A DiscoverySource instance
        :return: A DiscoveryDocument or None if nothing has been stored yet
        """
        _raw = self.load_raw(source)
        if _raw is None:
            logger.debug(f"Nothing stored for {source.url}")
            return None
        return DiscoveryDocument.parse(_raw, source.name)

    def save(self, source, raw: bytes):
        """
        Replace the stored document. The bytes are written to a temporary
        file in the same directory which is then renamed over the old one.
        """
        _path = self.cache_path(source)
        os.makedirs(self.data_dir, exist_ok=True)
        _fd, _tmp = tempfile.mkstemp(dir=self.data_dir, prefix=f".{source.cache_name}.")
        try:
            with os.fdopen(_fd, "wb") as fp:
                fp.write(raw)
                fp.flush()
                os.fsync(fp.fileno())
            os.replace(_tmp, _path)
        except OSError as err:
            try:
                os.unlink(_tmp)
            except FileNotFoundError:
                pass
            raise StoreError(f"Unable to write '{_path}': {err}")

        logger.debug(f"Stored {len(raw)} bytes in {_path}")

    @contextmanager
    def lock(self, source):
        """
        Exclusive lock on one source, held while its stored document is
        compared with and replaced by a newer one.
        The lock lives in a separate file next to the document.
        """
        os.makedirs(self.data_dir, exist_ok=True)
        _path = f"{self.cache_path(source)}.lock"
        try:
            lockf = open(_path, "a+", encoding="utf-8")
        except OSError as err:
            raise StoreError(f"Unable to open lock '{_path}': {err}")

        with lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)
