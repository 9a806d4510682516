"""
Pure operations on checklist item trees.

Every function returns a new tree and leaves its input untouched. Toggling
rebuilds only the path from the root to the toggled item; sibling subtrees
are reused by reference.
"""
from models.schemas import ChecklistItem


class ItemNotFound(KeyError):
    pass


def _leaves(items: list[ChecklistItem]):
    for item in items:
        if item.children:
            yield from _leaves(item.children)
        else:
            yield item


def calculate_progress(items: list[ChecklistItem]) -> int:
    """Completed leaves over all leaves, as a rounded percentage (0 when empty)."""
    total = 0
    completed = 0
    for leaf in _leaves(items):
        total += 1
        if leaf.is_completed:
            completed += 1
    return 0 if total == 0 else round(completed / total * 100)


def _mark_all(item: ChecklistItem, completed: bool) -> ChecklistItem:
    return item.model_copy(update={
        "is_completed": completed,
        "children": [_mark_all(child, completed) for child in item.children],
    })


def _rewrite(items: list[ChecklistItem], item_id: str, completed: bool | None) -> tuple[list[ChecklistItem], bool]:
    result: list[ChecklistItem] = []
    found = False
    for item in items:
        if found:
            result.append(item)
            continue
        if item.id == item_id:
            target = (not item.is_completed) if completed is None else completed
            result.append(_mark_all(item, target))
            found = True
        elif item.children:
            children, found = _rewrite(item.children, item_id, completed)
            if found:
                result.append(item.model_copy(update={
                    "children": children,
                    "is_completed": all(child.is_completed for child in children),
                }))
            else:
                result.append(item)
        else:
            result.append(item)
    return result, found


def toggle_item(items: list[ChecklistItem], item_id: str) -> list[ChecklistItem]:
    """
    Flips one item. Completing a parent completes all of its descendants;
    un-completing it clears them. Ancestors are recomputed on the way back
    up: complete iff every child is complete.
    """
    new_items, found = _rewrite(items, item_id, None)
    if not found:
        raise ItemNotFound(item_id)
    return new_items


def reset_items(items: list[ChecklistItem]) -> list[ChecklistItem]:
    return [_mark_all(item, False) for item in items]


def normalize_items(items: list[ChecklistItem], prefix: str = "") -> list[ChecklistItem]:
    """Gives generated items stable, unique, dotted ids and clears every completion flag."""
    normalized = []
    for i, item in enumerate(items, start=1):
        item_id = f"{prefix}{i}"
        normalized.append(item.model_copy(update={
            "id": item_id,
            "is_completed": False,
            "children": normalize_items(item.children, prefix=f"{item_id}."),
        }))
    return normalized


def collect_ids(items: list[ChecklistItem]) -> list[str]:
    ids = []
    for item in items:
        ids.append(item.id)
        ids.extend(collect_ids(item.children))
    return ids
