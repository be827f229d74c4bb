"""
Tests for parsing numbered acceptance criteria from user story HTML.
"""
from rtm_service.services.acceptance_criteria import parse_acceptance_criteria


def test_list_items_are_numbered_in_order():
    html = "<ol><li>can log in</li><li>can log out</li></ol>"
    
    assert parse_acceptance_criteria(html) == {1: "can log in", 2: "can log out"}


def test_whitespace_and_inline_markup_are_normalized():
    html = "<div><ul><li>  can\n   <b>log</b>   in </li></ul></div>"
    
    assert parse_acceptance_criteria(html) == {1: "can log in"}


def test_empty_items_are_skipped_but_consume_their_number():
    html = "<ol><li>first</li><li>  </li><li>third</li></ol>"
    
    criteria = parse_acceptance_criteria(html)
    
    assert criteria == {1: "first", 3: "third"}
    assert 2 not in criteria


def test_entities_are_decoded():
    assert parse_acceptance_criteria("<ul><li>Save &amp; close</li></ul>") == {1: "Save & close"}


def test_items_across_several_lists_share_one_sequence():
    html = "<p>Happy path</p><ol><li>a</li></ol><p>Errors</p><ol><li>b</li><li>c</li></ol>"
    
    assert parse_acceptance_criteria(html) == {1: "a", 2: "b", 3: "c"}


def test_missing_or_listless_input_gives_no_criteria():
    assert parse_acceptance_criteria(None) == {}
    assert parse_acceptance_criteria("") == {}
    assert parse_acceptance_criteria("<div>Users can log in</div>") == {}


def test_unclosed_item_ends_at_next_item():
    html = "<ul><li>can log in<li>can log out</ul>"
    
    assert parse_acceptance_criteria(html) == {1: "can log in", 2: "can log out"}


def test_unclosed_item_ends_with_its_list():
    html = "<ol><li>a</ol><p>Notes for reviewers</p>"
    
    assert parse_acceptance_criteria(html) == {1: "a"}


def test_nested_list_without_closing_tags():
    html = "<ol><li>checkout<ul><li>card<li>voucher</ul><li>receipt</ol>"
    
    assert parse_acceptance_criteria(html) == {
        1: "checkoutcardvoucher",
        2: "card",
        3: "voucher",
        4: "receipt",
    }
