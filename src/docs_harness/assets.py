"""Static-asset reference extraction from rendered documentation pages."""

LINK_TAG = "<link"
SCRIPT_TAG = "<script src"

HREF_MARKER = 'href="'
SRC_MARKER = 'src="'


def _marker_value(line: str, marker: str) -> str:
    """Return the quoted value that follows the first ``marker`` in ``line``."""
    start = line.find(marker)
    if start == -1:
        raise ValueError(f"Expected {marker!r} in asset line: {line!r}")
    remainder = line[start + len(marker):]
    return remainder.split('"', 1)[0]


def get_assets_paths(html: str) -> list[str]:
    """
    Extract the asset paths referenced by ``<link>`` and ``<script src>`` tags.

    The scan is line oriented: every line containing ``<link`` contributes its
    first ``href`` value, every other line containing ``<script src``
    contributes its first ``src`` value. Only one tag per line is expected,
    which is how the documentation page template renders them.

    Args:
        html: Full HTML document

    Returns:
        Asset paths in document order, duplicates included

    Raises:
        ValueError: If a tag line has no quoted ``href``/``src`` attribute
    """
    paths = []
    for line in html.split("\n"):
        if LINK_TAG in line:
            paths.append(_marker_value(line, HREF_MARKER))
        elif SCRIPT_TAG in line:
            paths.append(_marker_value(line, SRC_MARKER))
    return paths
