import re
import logging

from models.schemas import OutlineNode

logger = logging.getLogger(__name__)

ROOT_LABEL = "Mind Map"
EMPTY_LABEL = "Empty Map"

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET_RE = re.compile(r"^[-*]\s+(.*)$")
_FENCE_RE = re.compile(r"^```[\w-]*$")


def _strip_fences(lines: list[str]) -> list[str]:
    # Gemini sometimes wraps the outline in ```markdown ... ```
    if lines and _FENCE_RE.match(lines[0].strip()):
        lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return lines


def parse_outline(text: str) -> OutlineNode:
    """
    Turns a markdown outline (headings, bullets and plain lines) into a tree.

    Nesting comes from heading levels rather than indentation:
      - '#'..'######' headings sit at their heading level,
      - bullets and plain lines sit one level below the line just before
        them, so a run of bullets forms a chain,
      - a line closes every open node at its level or deeper.

    A lone top-level node becomes the root itself; several top-level nodes
    are gathered under a synthetic 'Mind Map' root. Never raises: empty input
    yields an 'Empty Map' placeholder.
    """
    lines = [l for l in _strip_fences((text or "").splitlines()) if l.strip()]
    if not lines:
        return OutlineNode(label=EMPTY_LABEL)

    root = OutlineNode(label=ROOT_LABEL)
    stack: list[tuple[OutlineNode, int]] = [(root, 0)]

    for line in lines:
        stripped = line.strip()

        heading = _HEADING_RE.match(stripped)
        bullet = _BULLET_RE.match(stripped) if not heading else None
        if heading:
            level = len(heading.group(1))
            label = heading.group(2).strip()
        else:
            level = stack[-1][1] + 1
            label = bullet.group(1).strip() if bullet else stripped

        while len(stack) > 1 and stack[-1][1] >= level:
            stack.pop()

        node = OutlineNode(label=label)
        stack[-1][0].children.append(node)
        stack.append((node, level))

    if len(root.children) == 1:
        return root.children[0]
    return root


def count_nodes(node: OutlineNode) -> int:
    return 1 + sum(count_nodes(child) for child in node.children)
