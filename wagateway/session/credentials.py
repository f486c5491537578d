"""
Credential persistence for the chat session.

The session's paired identity is an opaque blob owned by the session
implementation. The gateway only stores it, hands it back on the next
connection attempt and erases it on logout or clear-auth.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import GatewayError

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "credentials.bin"


class CredentialStoreError(GatewayError):
    """Raised when credential storage fails."""
    pass


class CredentialStore(ABC):
    """
    Abstract base class for credential storage backends.

    All methods are async so that file, database or remote backends can
    share the same interface.
    """

    @abstractmethod
    async def prepare(self) -> None:
        """
        Make sure the backend is usable (e.g. create directories).

        Raises:
            CredentialStoreError: If the storage cannot be created.
        """
        pass

    @abstractmethod
    async def load(self) -> bytes | None:
        """
        Return the stored credentials, or None if there are none.

        Raises:
            CredentialStoreError: If the stored record cannot be read.
        """
        pass

    @abstractmethod
    async def save(self, blob: bytes) -> None:
        """
        Durably replace the stored credentials.

        The write must be complete when this returns.

        Raises:
            CredentialStoreError: If the write fails.
        """
        pass

    @abstractmethod
    async def clear(self) -> bool:
        """
        Delete the stored credentials.

        Returns:
            True if something was deleted, False if nothing was stored.
        """
        pass

    async def exists(self) -> bool:
        """Check whether credentials are currently stored."""
        return (await self.load()) is not None


class InMemoryCredentialStore(CredentialStore):
    """
    In-memory credential store for testing and development.

    Credentials are lost when the process exits.
    """

    def __init__(self, blob: bytes | None = None) -> None:
        self._blob = blob

    async def prepare(self) -> None:
        pass

    async def load(self) -> bytes | None:
        return self._blob

    async def save(self, blob: bytes) -> None:
        self._blob = bytes(blob)

    async def clear(self) -> bool:
        existed = self._blob is not None
        self._blob = None
        return existed


class FileCredentialStore(CredentialStore):
    """
    Stores the credentials as a single file inside an auth directory.

    Writes go to a temporary file in the same directory which is fsynced
    and then renamed over the previous record, so a crash never leaves a
    half-written credential behind.

    Attributes:
        directory: The auth directory.
        path: The credentials file inside it.
    """

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)
        self.path = self.directory / CREDENTIALS_FILENAME

    async def prepare(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CredentialStoreError(
                f"Cannot create auth directory {self.directory}: {e}"
            ) from e

    async def load(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CredentialStoreError(f"Cannot read {self.path}: {e}") from e

    async def save(self, blob: bytes) -> None:
        await self.prepare()
        fd, tmp_name = tempfile.mkstemp(
            prefix=".credentials-", suffix=".tmp", dir=self.directory
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise CredentialStoreError(f"Cannot write {self.path}: {e}") from e

        self._sync_directory()
        logger.debug("Credentials persisted to %s (%d bytes)", self.path, len(blob))

    async def clear(self) -> bool:
        removed = False
        if self.directory.is_dir():
            # Also sweep temp files left behind by an interrupted save.
            for leftover in self.directory.glob(".credentials-*.tmp"):
                leftover.unlink(missing_ok=True)
        try:
            self.path.unlink()
            removed = True
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CredentialStoreError(f"Cannot delete {self.path}: {e}") from e

        if removed:
            logger.info("Credentials removed from %s", self.directory)
        return removed

    def _sync_directory(self) -> None:
        """Flush the rename to disk where the platform allows it."""
        try:
            dir_fd = os.open(self.directory, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            pass
        finally:
            os.close(dir_fd)

    def __repr__(self) -> str:
        return f"<FileCredentialStore path={self.path}>"
