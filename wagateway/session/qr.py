"""
Pairing QR artifacts.

While the session waits for a human to pair, the gateway keeps the raw
pairing code and a rendered PNG of it at a fixed path so that the HTTP
layer can serve it. The image is regenerated in place on every new code
and deleted as soon as the pairing window closes.
"""

import io
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import qrcode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairingArtifact:
    """
    The current pairing code and its rendered image.

    Attributes:
        raw_code: The code exactly as issued by the session.
        image_path: Where the PNG was written, or None if rendering failed.
        created_at: When the code was received.
    """

    raw_code: str
    image_path: Path | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


def render_png(code: str, path: Path) -> None:
    """Render ``code`` as a QR PNG, replacing ``path`` atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    image = qrcode.make(code)
    with open(tmp, "wb") as fh:
        image.save(fh)
    os.replace(tmp, path)


def render_ascii(code: str) -> str:
    """Render ``code`` as a terminal-friendly QR block."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(code)
    out = io.StringIO()
    qr.print_ascii(out=out)
    return out.getvalue()


class QRArtifactManager:
    """
    Holds the current pairing artifact and owns the image file.

    Only the lifecycle manager mutates it, from inside its serialization
    lock, so no locking is done here.

    Example:
        qr = QRArtifactManager(Path("public/qr/qr-code.png"))
        artifact = qr.publish("2@abc...")
        if qr.has_image():
            serve(qr.image_path)
        qr.clear()
    """

    def __init__(
        self,
        image_path: str | os.PathLike,
        renderer: Callable[[str, Path], None] = render_png,
        print_in_terminal: bool = False,
    ) -> None:
        """
        Initialize the manager.

        Args:
            image_path: Fixed location of the rendered PNG.
            renderer: Writes the image for a code; replaceable in tests.
            print_in_terminal: Also log an ASCII rendering of each code.
        """
        self._image_path = Path(image_path)
        self._renderer = renderer
        self._print_in_terminal = print_in_terminal
        self._current: PairingArtifact | None = None

    @property
    def image_path(self) -> Path:
        return self._image_path

    @property
    def current(self) -> PairingArtifact | None:
        """The live artifact, if a pairing code is outstanding."""
        return self._current

    def publish(self, code: str) -> PairingArtifact:
        """
        Replace the current artifact with one for ``code``.

        A rendering failure is logged and leaves an artifact without an
        image; the raw code is still kept so status reports stay accurate.
        """
        image_path: Path | None = self._image_path
        try:
            self._renderer(code, self._image_path)
        except Exception as e:
            logger.error("Failed to render pairing QR to %s: %s", self._image_path, e)
            image_path = None

        self._current = PairingArtifact(raw_code=code, image_path=image_path)
        logger.info("QR code generated. Scan to connect.")
        if self._print_in_terminal:
            logger.info("\n%s", render_ascii(code))
        return self._current

    def has_image(self) -> bool:
        """True if an artifact is live and its image exists on disk."""
        return (
            self._current is not None
            and self._current.image_path is not None
            and self._current.image_path.is_file()
        )

    def clear(self) -> bool:
        """
        Drop the artifact and delete the image file.

        Returns:
            True if there was anything to remove.
        """
        had_artifact = self._current is not None
        self._current = None
        try:
            self._image_path.unlink()
        except FileNotFoundError:
            return had_artifact
        except OSError as e:
            logger.warning("Could not delete pairing image %s: %s", self._image_path, e)
            return had_artifact
        return True
