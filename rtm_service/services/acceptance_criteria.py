"""
Parse numbered acceptance criteria out of the HTML stored on a user story.
"""
import re
from html.parser import HTMLParser
from typing import Dict, List, Optional

_WHITESPACE = re.compile(r"\s+")
_LIST_TAGS = {"ul", "ol"}


class _ListItemCollector(HTMLParser):
    """
    Collects the text of every <li>, numbered by the position of its opening tag.
    
    </li> is optional in HTML, so an open item also ends at the next sibling
    <li> or at the end of its list.
    """
    
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.items: List[List[str]] = []
        # Open <ul>/<ol> elements (None) and <li> elements (item index)
        self._stack: List[Optional[int]] = []

    def handle_starttag(self, tag, attrs):
        if tag in _LIST_TAGS:
            self._stack.append(None)
        elif tag == "li":
            if self._stack and self._stack[-1] is not None:
                self._stack.pop()
            self.items.append([])
            self._stack.append(len(self.items) - 1)

    def handle_endtag(self, tag):
        if tag == "li":
            if self._stack and self._stack[-1] is not None:
                self._stack.pop()
        elif tag in _LIST_TAGS and None in self._stack:
            while self._stack.pop() is not None:
                pass

    def handle_data(self, data):
        # Nested items contribute their text to every enclosing item too
        for index in self._stack:
            if index is not None:
                self.items[index].append(data)


def parse_acceptance_criteria(html: Optional[str]) -> Dict[int, str]:
    """
    Map criterion number to criterion text.
    
    Every <li> in document order gets the next 1-based number. Items whose
    text is empty are skipped but still consume their number, so
    numbering matches the list position a tester sees in Azure DevOps.
    
    Args:
        html: Raw Microsoft.VSTS.Common.AcceptanceCriteria field value
    
    Returns:
        Ordered dict of criterion number -> text ({} when there is no list)
    """
    if not html:
        return {}
    
    collector = _ListItemCollector()
    collector.feed(html)
    collector.close()
    
    criteria = {}
    for index, parts in enumerate(collector.items):
        text = _WHITESPACE.sub(" ", "".join(parts)).strip()
        if text:
            criteria[index + 1] = text
    return criteria
