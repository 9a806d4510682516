import unittest

from models.schemas import ChecklistItem
from services import checklist_service
from services.checklist_service import calculate_progress, toggle_item, reset_items, normalize_items, ItemNotFound


def tree():
    """Three leaves: 1.1, 1.2 under parent 1, and the standalone item 2."""
    return normalize_items([
        ChecklistItem(title="Membrane", children=[
            ChecklistItem(title="Phospholipids"),
            ChecklistItem(title="Proteins"),
        ]),
        ChecklistItem(title="Nucleus"),
    ])


def find(items, item_id):
    for item in items:
        if item.id == item_id:
            return item
        found = find(item.children, item_id)
        if found is not None:
            return found
    return None


class TestChecklistProgress(unittest.TestCase):
    def test_normalize_assigns_dotted_ids(self):
        self.assertEqual(checklist_service.collect_ids(tree()), ["1", "1.1", "1.2", "2"])

    def test_empty_checklist_is_zero(self):
        self.assertEqual(calculate_progress([]), 0)

    def test_only_leaves_count(self):
        items = toggle_item(tree(), "2")
        self.assertEqual(calculate_progress(items), 33)

    def test_round_trip(self):
        items = tree()
        self.assertEqual(calculate_progress(items), 0)
        items = toggle_item(items, "1.1")
        self.assertEqual(calculate_progress(items), 33)
        items = toggle_item(toggle_item(items, "1.2"), "2")
        self.assertEqual(calculate_progress(items), 100)
        self.assertEqual(calculate_progress(reset_items(items)), 0)

    def test_flat_list_progress_and_reset(self):
        items = normalize_items([ChecklistItem(title=t) for t in ("Skull", "Femur", "Tibia")])
        items = toggle_item(items, "1")
        self.assertEqual(calculate_progress(items), 33)
        items = toggle_item(toggle_item(items, "2"), "3")
        self.assertEqual(calculate_progress(items), 100)
        items = reset_items(items)
        self.assertEqual(calculate_progress(items), 0)
        self.assertEqual([i.is_completed for i in items], [False, False, False])

    def test_completing_leaves_never_lowers_progress(self):
        items = tree()
        last = calculate_progress(items)
        for item_id in ("1.2", "2", "1.1"):
            items = toggle_item(items, item_id)
            progress = calculate_progress(items)
            self.assertGreaterEqual(progress, last)
            last = progress


class TestChecklistToggle(unittest.TestCase):
    def test_parent_toggle_propagates_down(self):
        items = toggle_item(tree(), "1")
        self.assertTrue(find(items, "1.1").is_completed)
        self.assertTrue(find(items, "1.2").is_completed)
        items = toggle_item(items, "1")
        self.assertFalse(find(items, "1.1").is_completed)
        self.assertFalse(find(items, "1.2").is_completed)

    def test_parent_follows_children(self):
        items = toggle_item(tree(), "1.1")
        self.assertFalse(find(items, "1").is_completed)
        items = toggle_item(items, "1.2")
        self.assertTrue(find(items, "1").is_completed)
        items = toggle_item(items, "1.1")
        self.assertFalse(find(items, "1").is_completed)

    def test_toggle_does_not_touch_input(self):
        original = tree()
        toggle_item(original, "1.1")
        self.assertFalse(find(original, "1.1").is_completed)

    def test_untouched_subtrees_are_reused(self):
        original = tree()
        items = toggle_item(original, "1.1")
        self.assertIs(items[1], original[1])

    def test_unknown_item(self):
        with self.assertRaises(ItemNotFound):
            toggle_item(tree(), "9")


if __name__ == "__main__":
    unittest.main()
