"""Convert WordprocessingML (``word/document.xml``) into minimal HTML.

Only paragraphs, run text, bold/italic and inline images survive. Formatting
is decided per paragraph: a bold or italic flag anywhere in the paragraph
applies to all of its text.
"""

from __future__ import annotations

import html
import logging
import posixpath
import re

from manuscript_ingest.model.content import PathUrlMap, archive_basename

logger = logging.getLogger(__name__)

DOCUMENT_PART = "word/document.xml"
DOCUMENT_RELS_PART = "word/_rels/document.xml.rels"

_FLAG_ON = r'(?:\s+w:val="(?:1|true|on)")?\s*/>'


def parse_relationships(rels_xml: str, base_dir: str = "word") -> dict[str, str]:
    """Map relationship ids to archive paths from a ``.rels`` part.

    Targets are resolved against ``base_dir``; external targets are skipped.
    """
    relationships: dict[str, str] = {}
    for m in re.finditer(r"<(?:\w+:)?Relationship\b([^>]*)/?>", rels_xml):
        attrs = dict(re.findall(r'(\w+)="([^"]*)"', m.group(1)))
        rel_id = attrs.get("Id")
        target = attrs.get("Target")
        if not rel_id or not target or attrs.get("TargetMode") == "External":
            continue
        target = html.unescape(target)
        if target.startswith("/"):
            resolved = target.lstrip("/")
        else:
            resolved = posixpath.normpath(posixpath.join(base_dir, target))
        relationships[rel_id] = resolved
    return relationships


class OoxmlToHtmlConverter:
    """Paragraph-level WordprocessingML to HTML conversion."""

    def __init__(self) -> None:
        self._paragraph_re = re.compile(
            r"<w:p(?:\s[^>]*)?/>|<w:p(?:\s[^>]*?)?(?<!/)>(?P<body>.*?)</w:p>",
            re.DOTALL,
        )
        self._text_re = re.compile(r"<w:t(?:\s[^>]*)?>(?P<text>[^<]*)</w:t>")
        self._bold_re = re.compile(r"<w:b" + _FLAG_ON)
        self._italic_re = re.compile(r"<w:i" + _FLAG_ON)
        self._blip_re = re.compile(r'<a:blip[^>]*r:embed="(?P<rid>[^"]+)"[^>]*/?>')
        self._tag_re = re.compile(r"<[^>]+>")

    def convert(
        self,
        document_xml: str,
        path_map: PathUrlMap,
        relationships: dict[str, str] | None = None,
    ) -> str:
        """Render ``document_xml`` as a sequence of ``<p>`` elements.

        Falls back to the tag-stripped text of the whole document when no
        paragraph element can be found.
        """
        parts: list[str] = []
        for para in self._paragraph_re.finditer(document_xml):
            parts.append(self._render_paragraph(para.group("body") or "", path_map, relationships))

        if not parts:
            if document_xml:
                logger.warning("No paragraphs found in document XML; falling back to plain text")
            return self._tag_re.sub("", document_xml)

        return "".join(parts)

    def _render_paragraph(
        self,
        body: str,
        path_map: PathUrlMap,
        relationships: dict[str, str] | None,
    ) -> str:
        content = "".join(m.group("text") for m in self._text_re.finditer(body))

        for blip in self._blip_re.finditer(body):
            url = self.resolve_image(blip.group("rid"), path_map, relationships)
            if url is None:
                logger.debug(f"Unresolved image relationship {blip.group('rid')}")
                continue
            content += f'<img src="{url}" alt="image" />'

        if not content:
            return "<p></p>\n"

        is_bold = self._bold_re.search(body) is not None
        is_italic = self._italic_re.search(body) is not None
        if is_bold and is_italic:
            return f"<p><strong><em>{content}</em></strong></p>\n"
        if is_bold:
            return f"<p><strong>{content}</strong></p>\n"
        if is_italic:
            return f"<p><em>{content}</em></p>\n"
        return f"<p>{content}</p>\n"

    def resolve_image(
        self,
        rel_id: str,
        path_map: PathUrlMap,
        relationships: dict[str, str] | None = None,
    ) -> str | None:
        """Find the relocated URL for an ``r:embed`` relationship id.

        The relationship table wins when it names a relocated image. Otherwise
        the first path-map key containing the id, or whose basename the id
        contains, is used.
        """
        if relationships:
            target = relationships.get(rel_id)
            if target is not None:
                url = path_map.get(target) or path_map.get(archive_basename(target))
                if url is not None:
                    return url

        for path, url in path_map.items():
            basename = archive_basename(path)
            if rel_id in path or (basename and basename in rel_id):
                return url
        return None
