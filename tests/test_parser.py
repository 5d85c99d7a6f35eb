"""Tests for the tolerant structural parser and the tree navigation helpers."""

import pytest

from musicxml2tab.errors import ParseError
from musicxml2tab.parser import TEXT, Node, parse_xml
from musicxml2tab.util.xml import F, FA, T, attr, child_num, child_text, to_number

from xmlbuild import single_part, measure, attributes, tab


class TestParseStructure:
    """Elements, attributes and text children."""

    def test_elements_attributes_and_text(self):
        root = parse_xml('<a x="1" y="two"><b>hi</b><c/></a>')
        assert root.name == "a"
        assert root.attrs == {"x": "1", "y": "two"}
        assert [c.name for c in root.children] == ["b", "c"]
        b = root.children[0]
        assert len(b.children) == 1
        assert b.children[0].is_text
        assert b.children[0].text == "hi"

    def test_attribute_order_is_preserved(self):
        root = parse_xml('<a z="1" a="2" m="3"/>')
        assert list(root.attrs) == ["z", "a", "m"]

    def test_whitespace_only_text_is_dropped(self):
        root = parse_xml("<a>\n   <b/>\n\t</a>")
        assert [c.name for c in root.children] == ["b"]

    def test_text_interleaved_with_elements(self):
        root = parse_xml("<a>one<b/>two</a>")
        assert [c.name for c in root.children] == [TEXT, "b", TEXT]
        assert T(root) == "onetwo"

    def test_prolog_is_discarded(self):
        xml = ('<?xml version="1.0" encoding="UTF-8"?>\n'
               '<!DOCTYPE score [<!ENTITY e "v"> <!ELEMENT x ANY>]>\n'
               '<!-- a comment with <tags> -->\n'
               '<?processing instruction?>\n'
               '<root><!-- inner --><child/></root>')
        root = parse_xml(xml)
        assert root.name == "root"
        assert [c.name for c in root.children] == ["child"]

    def test_cdata_becomes_text_child(self):
        root = parse_xml("<a><![CDATA[<b>not a tag</b>]]></a>")
        assert len(root.children) == 1
        assert root.children[0].text == "<b>not a tag</b>"

    def test_entities_are_decoded(self):
        root = parse_xml('<a t="&lt;x&gt;">R&amp;B &#65;&#x42;</a>')
        assert root.attrs["t"] == "<x>"
        assert T(root) == "R&B AB"

    def test_quoted_gt_inside_attribute(self):
        root = parse_xml('<a t="1>2"/>')
        assert root.attrs == {"t": "1>2"}

    def test_single_quoted_attributes_are_ignored(self):
        root = parse_xml("<a t='1'/>")
        assert root.name == "a"
        assert root.attrs == {}

    def test_namespaced_attribute_names(self):
        root = parse_xml('<a xml:lang="de" data-x="1"/>')
        assert root.attrs == {"xml:lang": "de", "data-x": "1"}


class TestParseRecovery:
    """Malformed input yields a usable tree instead of an error."""

    def test_unterminated_tag_is_skipped(self):
        root = parse_xml('<root><bad attr="unterminated><ok/></root>')
        assert root.name == "root"
        assert [c.name for c in root.children] == ["ok"]

    def test_stray_closing_tag_is_ignored(self):
        root = parse_xml("</junk><a><b/></a>")
        assert root.name == "a"
        assert [c.name for c in root.children] == ["b"]

    def test_unclosed_elements_are_closed_at_end(self):
        root = parse_xml("<a><b><c/>")
        assert root.name == "a"
        assert root.children[0].name == "b"
        assert root.children[0].children[0].name == "c"

    @pytest.mark.parametrize("decl", [
        '<!ENTITY foo "bar">',
        "<!ELEMENT score-partwise (part-list, part+)>",
        '<!ENTITY gt-ish "a>b">',
        "<!junk>",
    ])
    def test_loose_declarations_are_discarded(self, decl):
        xml = decl + single_part(measure(attributes(), tab(0)))
        root = parse_xml(xml)
        assert root.name == "score-partwise"
        assert [c.name for c in root.children] == ["part-list", "part"]

    def test_first_top_level_element_is_root(self):
        root = parse_xml("<a><b/></a><trailing/>")
        assert root.name == "a"

    def test_out_of_range_character_reference_is_kept(self):
        assert T(parse_xml("<a>&#99999999;</a>")) == "&#99999999;"

    @pytest.mark.parametrize("text", ["", "   \n  ", "just some text", "<!-- only a comment -->"])
    def test_no_root_raises(self, text):
        with pytest.raises(ParseError) as exc:
            parse_xml(text)
        assert exc.value.stage == "parse"

    def test_parsing_is_deterministic(self):
        xml = single_part(measure(attributes(divisions=4), tab(3, string=2), tab(5, string=1)))
        assert parse_xml(xml) == parse_xml(xml)

    def test_repeated_parse_yields_independent_trees(self):
        xml = "<a><b/></a>"
        first = parse_xml(xml)
        first.children.append(Node("x"))
        assert len(parse_xml(xml).children) == 1


class TestNavigator:
    """Query helpers used by every higher component."""

    def test_find_first_and_all(self):
        root = parse_xml("<a><b n='1'/><c/><b/></a>")
        assert F(root, "c") is root.children[1]
        assert len(FA(root, "b")) == 2
        assert F(root, "missing") is None
        assert FA(None, "b") == []
        assert F(None, "b") is None

    def test_attr_lookup(self):
        root = parse_xml('<a id="P1"/>')
        assert attr(root, "id") == "P1"
        assert attr(root, "nope") is None
        assert attr(root, "nope", "dflt") == "dflt"
        assert attr(None, "id") is None

    def test_text_helpers(self):
        root = parse_xml("<n><duration> 480 </duration><alter>-1</alter><x>abc</x></n>")
        assert child_text(root, "x") == "abc"
        assert child_num(root, "duration") == 480
        assert child_num(root, "alter") == -1
        assert child_num(root, "x") is None
        assert child_num(root, "missing") is None
        assert T(None) == ""

    @pytest.mark.parametrize("raw,expected", [
        ("3", 3), (" 2.5 ", 2.5), ("4.0", 4), ("-1", -1), ("x", None), ("", None), (None, None), ("nan", None),
    ])
    def test_to_number(self, raw, expected):
        value = to_number(raw)
        assert value == expected
        if expected is not None:
            assert type(value) is type(expected)
