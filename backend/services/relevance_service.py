import logging

from models.schemas import Source

logger = logging.getLogger(__name__)

# Max sources forwarded when the query names no known topic (binary uploads only)
FALLBACK_LIMIT = 3
# Max sources forwarded in any case, to keep the Gemini payload small
MAX_SOURCES = 5
# Per-source character budget for inlined course text
TEXT_BUDGET = 2000

# Trigger substring (French / English / Arabic) → topical tags looked up in
# source names, contents and categories.
KEYWORD_TAGS: dict[str, list[str]] = {
    "cellule": ["cellule", "anatomie", "physiologie"],
    "cell": ["cellule", "anatomie"],
    "خلية": ["cellule", "anatomie"],
    "os": ["osseux", "squelette", "articulaire"],
    "عظم": ["osseux", "squelette"],
    "muscle": ["musculaire"],
    "عضل": ["musculaire"],
    "coeur": ["cardio", "vasculaire"],
    "قلب": ["cardio", "vasculaire"],
    "poumon": ["respiratoire"],
    "رئة": ["respiratoire"],
    "digestif": ["digestif"],
    "هضم": ["digestif"],
    "nerf": ["nerveux"],
    "عصب": ["nerveux"],
    "embryo": ["embryologie"],
    "جنين": ["embryologie"],
    "tissu": ["tissus", "histologie"],
    "نسيج": ["tissus"],
    "hormone": ["endocrine", "glande"],
    "هرمون": ["endocrine"],
    "terme": ["terminologie", "abréviation"],
    "مصطلح": ["terminologie"],
    "santé": ["santé publique"],
    "صحة": ["santé publique"],
    "psycho": ["psychologie", "anthropologie"],
    "نفس": ["psychologie"],
}


def match_tags(query: str) -> list[str]:
    """Every tag whose trigger occurs in the query. Duplicates are kept."""
    q_lower = (query or "").lower()
    tags: list[str] = []
    for trigger, trigger_tags in KEYWORD_TAGS.items():
        if trigger in q_lower:
            tags.extend(trigger_tags)
    return tags


def _matches(source: Source, tags: list[str]) -> bool:
    name = source.name.lower()
    content = (source.content or "").lower()
    category = (source.category or "").lower()
    return any(
        tag in name or tag in content or tag in category or category == tag
        for tag in tags
    )


def select_relevant_sources(query: str, sources: list[Source]) -> list[Source]:
    """
    Zero-latency pre-filter deciding which sources accompany a prompt.

    With no recognised topic in the query only user uploads (binary sources)
    are forwarded, at most FALLBACK_LIMIT of them. Otherwise uploads come
    first, followed by every text source mentioning one of the matched tags,
    deduplicated and capped at MAX_SOURCES.
    """
    binary = [s for s in sources if s.is_binary]

    tags = match_tags(query)
    if not tags:
        return binary[:FALLBACK_LIMIT]

    selected: list[Source] = []
    seen: set[str] = set()
    for source in binary + [s for s in sources if _matches(s, tags)]:
        if source.id in seen:
            continue
        seen.add(source.id)
        selected.append(source)

    logger.debug("Relevance selector: tags=%s selected=%d/%d", sorted(set(tags)), len(selected), len(sources))
    return selected[:MAX_SOURCES]


def build_context(sources: list[Source], budget: int = TEXT_BUDGET) -> tuple[list[dict], str]:
    """
    Splits sources into Gemini inline-data parts (binary uploads) and a text
    block of '[name]: content' lines, each truncated to `budget` characters.
    """
    parts: list[dict] = []
    lines: list[str] = []
    for source in sources:
        if source.data:
            parts.append({"mime_type": source.type, "data": source.data})
        elif source.content:
            content = source.content
            if len(content) > budget:
                content = content[:budget] + "..."
            lines.append(f"[{source.name}]: {content}")
    return parts, "\n".join(lines)
