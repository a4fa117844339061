from __future__ import annotations

import logging

from manuscript_ingest.ingest.archive_reader import ArchiveReader
from manuscript_ingest.ingest.error_handling import UnsupportedFormat
from manuscript_ingest.ingest.format_sniffer import detect_format
from manuscript_ingest.ingest.image_relocator import ImageRelocator, collect_pending_images
from manuscript_ingest.ingest.progress import ProgressCallback, safe_emit
from manuscript_ingest.model.content import ContentFormat, ExtractedContent, ExtractedImage
from manuscript_ingest.model.extraction_options import ExtractionOptions
from manuscript_ingest.transform.ooxml_html import (
    DOCUMENT_PART,
    DOCUMENT_RELS_PART,
    OoxmlToHtmlConverter,
    parse_relationships,
)
from manuscript_ingest.transform.reference_rewriter import ReferenceRewriter
from manuscript_ingest.types import ObjectStore

logger = logging.getLogger(__name__)

DOCX_MEDIA_PREFIX = "word/media/"
CONTENT_SUFFIXES = (".html", ".xhtml", ".htm")


def is_content_document(name: str) -> bool:
    """EPUB body document: an (X)HTML member that is not a TOC or nav page."""
    lower = name.lower()
    return lower.endswith(CONTENT_SUFFIXES) and "toc" not in lower and "nav" not in lower


def validate_namespace(asset_namespace: str) -> str:
    if not asset_namespace or not asset_namespace.strip():
        raise ValueError("Asset namespace must not be empty")
    if "/" in asset_namespace or "\\" in asset_namespace or ".." in asset_namespace:
        raise ValueError(f"Invalid asset namespace '{asset_namespace}'")
    return asset_namespace


class ContentExtractor:
    """Extract storage-backed HTML from EPUB and DOCX manuscripts.

    One instance can serve many concurrent ``extract`` calls; each call works
    on its own readers, pending images and path map. The object store is the
    only shared resource.
    """

    def __init__(
        self,
        store: ObjectStore,
        options: ExtractionOptions | None = None,
        on_progress: ProgressCallback = None,
    ) -> None:
        self.store = store
        self.options = options or ExtractionOptions()
        self.on_progress = on_progress
        self.rewriter = ReferenceRewriter()
        self.converter = OoxmlToHtmlConverter()

    async def extract(self, data: bytes, asset_namespace: str) -> ExtractedContent:
        """Sniff the container format and run the matching pipeline.

        Args:
            data: Raw uploaded file bytes
            asset_namespace: Identifier that scopes stored images (e.g., a book id)

        Returns:
            ExtractedContent with rewritten HTML and the relocated images

        Raises:
            UnsupportedFormat: If the bytes are neither EPUB nor DOCX
            InvalidArchive: If the archive cannot be opened
            ReadFailure: If a member cannot be read or decoded
            StorageFailure: If any image upload fails
            ValueError: If the asset namespace is empty or not path-safe
        """
        validate_namespace(asset_namespace)

        fmt = detect_format(data)
        safe_emit(
            self.on_progress,
            "extract:start",
            {"format": fmt.value, "bytes": len(data), "namespace": asset_namespace},
        )
        if fmt is ContentFormat.EPUB:
            content = await self.extract_epub(data, asset_namespace)
        elif fmt is ContentFormat.DOCX:
            content = await self.extract_docx(data, asset_namespace)
        else:
            raise UnsupportedFormat()

        logger.info(
            f"Extracted {fmt.value} for {asset_namespace}: "
            f"{len(content.html_content)} chars, {len(content.images)} images"
        )
        safe_emit(
            self.on_progress,
            "extract:success",
            {"format": fmt.value, "images": len(content.images)},
        )
        return content

    async def extract_epub(self, data: bytes, asset_namespace: str) -> ExtractedContent:
        with ArchiveReader(data) as reader:
            pending = collect_pending_images(reader)
        safe_emit(self.on_progress, "extract:images_collected", {"count": len(pending)})

        relocator = self._relocator()
        images, path_map = await relocator.relocate(pending, asset_namespace)
        del pending

        html_parts: list[str] = []
        try:
            with ArchiveReader(data) as reader:
                for name in reader.names():
                    if not is_content_document(name):
                        continue
                    markup = reader.read_text(name)
                    html_parts.append(self.rewriter.rewrite(markup, path_map))
                    logger.debug(f"Rewrote content document {name}")
        except Exception:
            await self._discard(relocator, images)
            raise

        return ExtractedContent(
            html_content=self.options.chapter_separator.join(html_parts),
            images=images,
            format=ContentFormat.EPUB,
        )

    async def extract_docx(self, data: bytes, asset_namespace: str) -> ExtractedContent:
        with ArchiveReader(data) as reader:
            pending = collect_pending_images(reader, member_prefix=DOCX_MEDIA_PREFIX)
        safe_emit(self.on_progress, "extract:images_collected", {"count": len(pending)})

        relocator = self._relocator()
        images, path_map = await relocator.relocate(pending, asset_namespace)
        del pending

        try:
            with ArchiveReader(data) as reader:
                document_xml, relationships = self._read_docx_parts(reader)
        except Exception:
            await self._discard(relocator, images)
            raise

        return ExtractedContent(
            html_content=self.converter.convert(document_xml, path_map, relationships),
            images=images,
            format=ContentFormat.DOCX,
        )

    def _read_docx_parts(self, reader: ArchiveReader) -> tuple[str, dict[str, str]]:
        if reader.contains(DOCUMENT_PART):
            document_xml = reader.read_text(DOCUMENT_PART)
        else:
            logger.warning(f"{DOCUMENT_PART} missing from DOCX archive; producing empty HTML")
            document_xml = ""

        relationships: dict[str, str] = {}
        if reader.contains(DOCUMENT_RELS_PART):
            relationships = parse_relationships(reader.read_text(DOCUMENT_RELS_PART))
        return document_xml, relationships

    def _relocator(self) -> ImageRelocator:
        return ImageRelocator(self.store, self.options, self.on_progress)

    async def _discard(self, relocator: ImageRelocator, images: list[ExtractedImage]) -> None:
        if self.options.cleanup_on_failure and images:
            logger.info(f"Extraction failed after upload; deleting {len(images)} images")
            await relocator.discard(images)
