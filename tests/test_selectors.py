from webvisor.recorder.dom import Document
from webvisor.recorder.selectors import css_escape, selector_of


class TestSelectorOf:
    def test_id_short_circuits(self):
        doc = Document()
        el = doc.create_element("button", {"id": "buy", "class": "btn"})
        doc.body.append_child(el)
        assert selector_of(el) == "#buy"

    def test_path_with_classes_capped_at_two(self):
        doc = Document()
        el = doc.create_element("div", {"class": "a b c"})
        doc.body.append_child(el)
        assert selector_of(el) == "html > body > div.a.b"

    def test_nth_of_type_only_with_same_tag_siblings(self):
        doc = Document()
        ul = doc.create_element("ul", {}, doc.create_element("li"), doc.create_element("li"))
        doc.body.append_child(ul)
        assert selector_of(ul.children[1]) == "html > body > ul > li:nth-of-type(2)"
        assert selector_of(ul) == "html > body > ul"

    def test_ancestor_id_anchors_the_path(self):
        doc = Document()
        span = doc.create_element("span")
        doc.body.append_child(doc.create_element("div", {"id": "main"}, span))
        assert selector_of(span) == "#main > span"

    def test_depth_is_limited(self):
        doc = Document()
        parent = doc.body
        for _ in range(8):
            child = doc.create_element("section")
            parent.append_child(child)
            parent = child
        assert len(selector_of(parent).split(" > ")) == 6

    def test_non_elements_have_no_selector(self):
        doc = Document()
        text = doc.create_text_node("hi")
        doc.body.append_child(text)
        assert selector_of(text) == ""
        assert selector_of(None) == ""


class TestCssEscape:
    def test_leading_digit(self):
        assert css_escape("1a") == "\\31 a"

    def test_punctuation(self):
        assert css_escape("a.b:c") == "a\\.b\\:c"

    def test_plain_identifier_untouched(self):
        assert css_escape("main-nav_2") == "main-nav_2"
