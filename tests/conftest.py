import io
import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.utils.archives import FakeObjectStore, build_epub, xhtml  # noqa: E402


@pytest.fixture
def png_bytes() -> bytes:
    """A real 2x2 PNG image."""
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (2, 2), color=(200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def minimal_epub(png_bytes: bytes) -> bytes:
    """EPUB with one chapter referencing one image."""
    return build_epub(
        [
            (
                "OEBPS/chapter1.xhtml",
                xhtml('<p>Once upon a time.</p><img src="images/a.png" alt="A"/>'),
            ),
            ("OEBPS/images/a.png", png_bytes),
        ]
    )


@pytest.fixture
def isolate_logging():
    """Isolate logging configuration between tests.

    The CLI calls logging.basicConfig; this keeps its handlers from leaking
    into other tests.
    """
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level

    logging.root.handlers.clear()
    logging.root.addHandler(logging.NullHandler())

    yield

    logging.root.handlers.clear()
    logging.root.handlers.extend(original_handlers)
    logging.root.setLevel(original_level)
