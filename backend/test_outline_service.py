import unittest

from services.outline_service import parse_outline, count_nodes, ROOT_LABEL, EMPTY_LABEL


def labels(node):
    """Pre-order list of labels."""
    out = [node.label]
    for child in node.children:
        out.extend(labels(child))
    return out


class TestParseOutline(unittest.TestCase):
    def test_headings_keep_document_order(self):
        text = "# Cell\n## Membrane\n### Lipids\n## Nucleus\n### DNA\n### RNA"
        tree = parse_outline(text)
        self.assertEqual(labels(tree), ["Cell", "Membrane", "Lipids", "Nucleus", "DNA", "RNA"])
        self.assertEqual(count_nodes(tree), 6)

    def test_single_top_level_node_becomes_root(self):
        tree = parse_outline("# Heart\n## Atria\n## Ventricles")
        self.assertEqual(tree.label, "Heart")
        self.assertEqual([c.label for c in tree.children], ["Atria", "Ventricles"])

    def test_several_top_level_nodes_get_synthetic_root(self):
        tree = parse_outline("# Mitosis\n# Meiosis")
        self.assertEqual(tree.label, ROOT_LABEL)
        self.assertEqual([c.label for c in tree.children], ["Mitosis", "Meiosis"])

    def test_empty_input(self):
        for text in ("", "   \n\n  ", None):
            tree = parse_outline(text)
            self.assertEqual(tree.label, EMPTY_LABEL)
            self.assertEqual(tree.children, [])

    def test_consecutive_bullets_nest(self):
        tree = parse_outline("# A\n- x\n- y")
        self.assertEqual(tree.label, "A")
        x = tree.children[0]
        self.assertEqual(x.label, "x")
        self.assertEqual([c.label for c in x.children], ["y"])

    def test_heading_closes_bullet_chain(self):
        tree = parse_outline("# Heart\n## Valves\n* Mitral\n- Tricuspid\n## Vessels\n- Aorta")
        valves, vessels = tree.children
        self.assertEqual(labels(valves), ["Valves", "Mitral", "Tricuspid"])
        self.assertEqual(valves.children[0].children[0].label, "Tricuspid")
        self.assertEqual(labels(vessels), ["Vessels", "Aorta"])

    def test_bullet_before_any_heading_is_top_level(self):
        tree = parse_outline("- intro\n# Cell")
        self.assertEqual(tree.label, ROOT_LABEL)
        self.assertEqual([c.label for c in tree.children], ["intro", "Cell"])

    def test_plain_line_nests_under_previous_node(self):
        tree = parse_outline("# Heart\n- Valves\nfour of them")
        valves = tree.children[0]
        self.assertEqual(valves.label, "Valves")
        self.assertEqual([c.label for c in valves.children], ["four of them"])

    def test_code_fences_are_ignored(self):
        tree = parse_outline("```markdown\n# Bones\n## Skull\n```")
        self.assertEqual(labels(tree), ["Bones", "Skull"])

    def test_never_raises_on_odd_input(self):
        tree = parse_outline("### deep first\n# then shallow\n-not a bullet")
        self.assertEqual(tree.label, ROOT_LABEL)
        self.assertIn("-not a bullet", labels(tree))


if __name__ == "__main__":
    unittest.main()
