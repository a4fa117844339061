from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from manuscript_ingest.ingest.content_extractor import ContentExtractor, is_content_document
from manuscript_ingest.ingest.error_handling import (
    DecodeError,
    InvalidArchive,
    StorageFailure,
    UnsupportedFormat,
)
from manuscript_ingest.ingest.format_sniffer import detect_format
from manuscript_ingest.model.content import ContentFormat, ExtractedContent
from manuscript_ingest.model.extraction_options import ExtractionOptions
from manuscript_ingest.storage.local_store import LocalObjectStore
from tests.utils.archives import (
    FakeObjectStore,
    blip_run,
    build_docx,
    build_epub,
    build_zip,
    xhtml,
)


def _extract(store: object, data: bytes, namespace: str = "book-1", **kwargs: object) -> ExtractedContent:
    extractor = ContentExtractor(store, **kwargs)  # type: ignore[arg-type]
    return asyncio.run(extractor.extract(data, namespace))


@pytest.mark.parametrize(
    "name, expected",
    [
        ("OEBPS/chapter1.xhtml", True),
        ("text/part.HTML", True),
        ("a.htm", True),
        ("OEBPS/toc.xhtml", False),
        ("OEBPS/nav.xhtml", False),
        ("OEBPS/TOC.html", False),
        ("OEBPS/content.opf", False),
        ("OEBPS/toc.ncx", False),
    ],
)
def test_is_content_document(name: str, expected: bool) -> None:
    assert is_content_document(name) is expected


def test_minimal_epub(minimal_epub: bytes, fake_store: FakeObjectStore) -> None:
    assert detect_format(minimal_epub) is ContentFormat.EPUB

    out = _extract(fake_store, minimal_epub)

    assert out.format is ContentFormat.EPUB
    assert len(out.images) == 1
    image = out.images[0]
    assert image.original_path == "OEBPS/images/a.png"
    assert image.content_type == "image/png"
    assert image.relocated_url.startswith("https://cdn.example.com/content-images/book-1/")
    assert image.relocated_url.endswith("_a.png")
    assert f'src="{image.relocated_url}"' in out.html_content
    assert 'src="images/a.png"' not in out.html_content
    assert "Once upon a time." in out.html_content


def test_epub_image_size_matches_payload(minimal_epub: bytes, png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    out = _extract(fake_store, minimal_epub)
    assert out.images[0].size_bytes == len(png_bytes)
    assert fake_store.objects[out.images[0].storage_key] == (png_bytes, "image/png")


def test_epub_joins_content_documents_and_skips_navigation(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    data = build_epub(
        [
            ("OEBPS/nav.xhtml", xhtml("<nav>Contents</nav>")),
            ("OEBPS/ch1.xhtml", xhtml("<p>One</p>")),
            ("OEBPS/toc.xhtml", xhtml("<p>TOC</p>")),
            ("OEBPS/ch2.html", xhtml('<p>Two</p><svg><image xlink:href="../img/c.png"/></svg>')),
            ("OEBPS/img/c.png", png_bytes),
            ("OEBPS/content.opf", "<package/>"),
        ]
    )

    out = _extract(fake_store, data)

    chapters = out.html_content.split("\n\n<!-- Chapter Break -->\n\n")
    assert len(chapters) == 2
    assert "<p>One</p>" in chapters[0]
    assert "<p>Two</p>" in chapters[1]
    assert "Contents" not in out.html_content
    assert "TOC" not in out.html_content
    assert f'xlink:href="{out.images[0].relocated_url}"' in chapters[1]


def test_epub_images_keep_archive_order(png_bytes: bytes) -> None:
    store = FakeObjectStore(delay=0.01)
    names = [f"OEBPS/images/{n}.png" for n in ("z", "a", "m", "b", "q")]
    data = build_epub([(name, png_bytes) for name in names] + [("OEBPS/c.xhtml", xhtml(""))])

    out = _extract(store, data, options=ExtractionOptions(max_concurrent_uploads=5))

    assert [img.original_path for img in out.images] == names


def test_epub_basename_collision(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    data = build_epub(
        [
            ("OEBPS/part1/fig.png", png_bytes),
            ("OEBPS/part2/fig.png", png_bytes + b"\x00"),
            (
                "OEBPS/ch.xhtml",
                xhtml('<img src="OEBPS/part1/fig.png"/><img src="OEBPS/part2/fig.png"/><img src="fig.png"/>'),
            ),
        ]
    )

    out = _extract(fake_store, data)

    first, second = out.images
    assert first.storage_key != second.storage_key
    assert len(fake_store.objects) == 2
    assert out.html_content.count(f'src="{first.relocated_url}"') == 1
    assert out.html_content.count(f'src="{second.relocated_url}"') == 2


def test_epub_unresolved_reference_is_left_dangling(fake_store: FakeObjectStore) -> None:
    data = build_epub([("OEBPS/ch.xhtml", xhtml('<img src="images/missing.png"/>'))])
    out = _extract(fake_store, data)
    assert out.images == []
    assert 'src="images/missing.png"' in out.html_content


def test_docx_bold_paragraph(fake_store: FakeObjectStore) -> None:
    data = build_docx("<w:p><w:r><w:rPr><w:b/></w:rPr><w:t>Hello</w:t></w:r></w:p>")
    assert detect_format(data) is ContentFormat.DOCX

    out = _extract(fake_store, data)

    assert out.format is ContentFormat.DOCX
    assert "<p><strong>Hello</strong></p>" in out.html_content
    assert out.images == []


def test_docx_inline_image(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    body = (
        "<w:p><w:r><w:t>Intro</w:t></w:r></w:p>"
        f"<w:p>{blip_run('rId4')}</w:p>"
    )
    data = build_docx(
        body,
        media=[
            ("word/media/image1.png", png_bytes),
            ("word/media/image2.png", png_bytes),
        ],
        relationships={"rId4": "media/image2.png", "rId5": "media/image1.png"},
    )

    out = _extract(fake_store, data)

    assert [img.original_path for img in out.images] == [
        "word/media/image1.png",
        "word/media/image2.png",
    ]
    assert out.html_content == (
        "<p>Intro</p>\n"
        f'<p><img src="{out.images[1].relocated_url}" alt="image" /></p>\n'
    )


def test_docx_only_relocates_word_media(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    data = build_docx(
        "<w:p/>",
        media=[("word/media/image1.png", png_bytes), ("docProps/thumbnail.jpeg", b"\xff\xd8")],
    )
    out = _extract(fake_store, data)
    assert [img.original_path for img in out.images] == ["word/media/image1.png"]


def test_docx_without_document_xml_is_empty(fake_store: FakeObjectStore) -> None:
    data = build_zip([("[Content_Types].xml", "<Types/>")])
    out = _extract(fake_store, data)
    assert out.format is ContentFormat.DOCX
    assert out.html_content == ""


def test_unknown_format_raises(fake_store: FakeObjectStore) -> None:
    with pytest.raises(UnsupportedFormat):
        _extract(fake_store, b"%PDF-1.7 not a manuscript")
    with pytest.raises(UnsupportedFormat):
        _extract(fake_store, build_zip([("notes.txt", "hi")]))
    assert fake_store.upload_calls == []


@pytest.mark.parametrize("namespace", ["", "   ", "a/b", "..", "a\\b"])
def test_bad_namespace_rejected(minimal_epub: bytes, fake_store: FakeObjectStore, namespace: str) -> None:
    with pytest.raises(ValueError):
        _extract(fake_store, minimal_epub, namespace=namespace)


def test_storage_failure_aborts_extraction(png_bytes: bytes) -> None:
    store = FakeObjectStore(fail_on=lambda key: key.endswith("_b.png"))
    data = build_epub(
        [
            ("OEBPS/a.png", png_bytes),
            ("OEBPS/b.png", png_bytes),
            ("OEBPS/ch.xhtml", xhtml('<img src="a.png"/><img src="b.png"/>')),
        ]
    )

    with pytest.raises(StorageFailure):
        _extract(store, data)

    assert store.objects == {}


def test_decode_error_after_upload_cleans_up(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    data = build_epub(
        [
            ("OEBPS/a.png", png_bytes),
            ("OEBPS/ch.xhtml", b"\xff\xfe not utf-8 \xfa"),
        ]
    )

    with pytest.raises(DecodeError):
        _extract(fake_store, data)

    assert len(fake_store.upload_calls) == 1
    assert fake_store.deleted == fake_store.upload_calls
    assert fake_store.objects == {}


@pytest.mark.parametrize("method", ["extract_epub", "extract_docx"])
def test_pipelines_reject_unreadable_archives(method: str) -> None:
    store = FakeObjectStore()
    extractor = ContentExtractor(store)
    with pytest.raises(InvalidArchive):
        asyncio.run(getattr(extractor, method)(b"PK\x03\x04 truncated upload", "ns"))
    assert store.upload_calls == []


def test_progress_events(minimal_epub: bytes, fake_store: FakeObjectStore) -> None:
    events: list[str] = []

    def on_progress(event: str, payload: dict[str, int | str]) -> None:
        events.append(event)
        raise RuntimeError("callback failures are ignored")

    _extract(fake_store, minimal_epub, on_progress=on_progress)

    assert events == [
        "extract:start",
        "extract:images_collected",
        "extract:image_uploaded",
        "extract:success",
    ]


def test_concurrent_extractions_share_one_store(png_bytes: bytes, fake_store: FakeObjectStore) -> None:
    data = build_epub([("OEBPS/a.png", png_bytes), ("OEBPS/c.xhtml", xhtml('<img src="a.png"/>'))])
    extractor = ContentExtractor(fake_store)

    async def _run() -> list[ExtractedContent]:
        return list(await asyncio.gather(*(extractor.extract(data, f"book-{i}") for i in range(4))))

    results = asyncio.run(_run())

    assert len(fake_store.objects) == 4
    for i, out in enumerate(results):
        assert f"/content-images/book-{i}/" in out.images[0].relocated_url
        assert out.images[0].relocated_url in out.html_content


def test_extract_with_local_store(minimal_epub: bytes, tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path / "storage", "https://static.example.com/")
    out = _extract(store, minimal_epub, namespace="b9")

    image = out.images[0]
    assert image.relocated_url == f"https://static.example.com/{image.storage_key}"
    assert (tmp_path / "storage" / image.storage_key).is_file()
