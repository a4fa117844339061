from __future__ import annotations

import re

from manuscript_ingest.model.content import PathUrlMap


class ReferenceRewriter:
    """Point ``src`` and ``xlink:href`` attributes at relocated image URLs.

    Not tied to any document type: EPUB XHTML and inline SVG use the same
    attribute syntax. References with no entry in the path map are left as
    they are.
    """

    def __init__(self) -> None:
        self._patterns: list[tuple[str, re.Pattern[str]]] = [
            ("src", re.compile(r"""src=["'](?P<ref>[^"']+)["']""")),
            ("xlink:href", re.compile(r"""xlink:href=["'](?P<ref>[^"']+)["']""")),
        ]

    def rewrite(self, markup: str, path_map: PathUrlMap) -> str:
        if not len(path_map):
            return markup

        result = markup
        for attr, pattern in self._patterns:

            def repl(m: re.Match[str], attr: str = attr) -> str:
                url = path_map.lookup(m.group("ref"))
                if url is None:
                    return m.group(0)
                return f'{attr}="{url}"'

            result = pattern.sub(repl, result)
        return result
