from __future__ import annotations

import unittest

from legal_billables.document import Document, InsertionWatch, Node


class DocumentTests(unittest.TestCase):
    def test_input_bubbles_but_focus_does_not(self) -> None:
        document = Document()
        field = Node("input")
        container = Node("div", children=[field])
        document.body.append_child(container)
        seen: list[str] = []
        container.add_event_listener("input", lambda event: seen.append(f"input:{event.target.tag}"))
        container.add_event_listener("focus", lambda event: seen.append("focus"))
        container.add_event_listener("focusin", lambda event: seen.append("focusin"))

        field.type_text("hello")
        document.focus(field)

        self.assertEqual(seen, ["input:input", "focusin"])
        self.assertEqual(field.value, "hello")
        self.assertIs(document.active_element, field)

    def test_blur_runs_with_active_element_cleared(self) -> None:
        document = Document()
        first = document.body.append_child(Node("input"))
        second = document.body.append_child(Node("input"))
        during_blur: list[object] = []
        first.add_event_listener("blur", lambda event: during_blur.append(document.active_element))

        document.focus(first)
        document.focus(second)

        self.assertEqual(during_blur, [None])
        self.assertIs(document.active_element, second)

    def test_mutations_reported_for_connected_nodes_only(self) -> None:
        document = Document()
        records = []
        document.observe(records.append)
        detached = Node("div")
        detached.append_child(Node("span"))
        self.assertEqual(records, [])

        document.body.append_child(detached)
        detached.remove()
        self.assertEqual(len(records), 2)
        self.assertEqual(records[0].added, (detached,))
        self.assertEqual(records[1].removed, (detached,))

    def test_inner_text_joins_descendants(self) -> None:
        body = Node("div", text="Hi,", children=[Node("div", text="Spent 2 hours"), Node("br")])
        self.assertEqual(body.inner_text, "Hi,\nSpent 2 hours")


class InsertionWatchTests(unittest.TestCase):
    def test_attaches_each_matching_node_once(self) -> None:
        document = Document()
        attached: list[Node] = []
        watch = InsertionWatch(
            document,
            lambda node: node.get_attribute("role") == "dialog",
            attached.append,
            marker="data-test-tracked",
        )
        existing = document.body.append_child(Node("div", {"role": "dialog"}))
        watch.start()
        document.body.append_child(Node("p"))
        document.body.append_child(Node("p"))
        later = document.body.append_child(Node("div", {"role": "dialog"}))
        watch.scan()

        self.assertEqual(attached, [existing, later])
        self.assertEqual(later.get_attribute("data-test-tracked"), "true")

    def test_marked_nodes_are_skipped(self) -> None:
        document = Document()
        attached: list[Node] = []
        document.body.append_child(Node("div", {"role": "dialog", "data-test-tracked": "true"}))
        watch = InsertionWatch(
            document,
            lambda node: node.get_attribute("role") == "dialog",
            attached.append,
            marker="data-test-tracked",
        )
        watch.start()
        self.assertEqual(attached, [])

    def test_stop_disconnects(self) -> None:
        document = Document()
        attached: list[Node] = []
        watch = InsertionWatch(document, lambda node: node.tag == "button", attached.append, "data-seen")
        watch.start()
        watch.stop()
        document.body.append_child(Node("button"))
        self.assertEqual(attached, [])
        self.assertFalse(watch.running)


if __name__ == "__main__":
    unittest.main()
