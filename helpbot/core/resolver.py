"""
Tag Resolver

Turns a `!h <tag>` chat message into a reply: a link into the Neovim user
manual, or a "not found" notice.
"""

import bisect
import logging
from enum import Enum
from typing import Optional

from .tags import TagStore, TagTable

logger = logging.getLogger(__name__)

# The space keeps messages like "!hello" from triggering
TRIGGER = "!h "
DEFAULT_DOC_BASE_URL = "https://neovim.io/doc/user"
NOT_FOUND_TEMPLATE = "No help found for {tag}!"


class LookupPolicy(Enum):
    """How a query that is not an exact tag is handled."""

    EXACT = "exact"
    NEAREST = "nearest"


def extract_query(message: str) -> Optional[str]:
    """Return the trimmed tag query, or None if the message is not a trigger."""
    if not message.startswith(TRIGGER):
        return None
    return message[len(TRIGGER):].strip()


def nearest_tag(table: TagTable, query: str) -> Optional[str]:
    """
    Smallest tag >= query in lexicographic order, or the last tag when the
    query sorts after every tag. None for an empty table.
    """
    tags = table.sorted_tags
    if not tags:
        return None
    index = bisect.bisect_left(tags, query)
    if index == len(tags):
        index -= 1
    return tags[index]


class TagResolver:
    """Resolves trigger messages against the current tag table."""

    def __init__(
        self,
        store: TagStore,
        policy: LookupPolicy = LookupPolicy.EXACT,
        doc_base_url: str = DEFAULT_DOC_BASE_URL,
    ):
        self.store = store
        self.policy = LookupPolicy(policy)
        self.doc_base_url = doc_base_url.rstrip("/")

    def resolve(self, message: str) -> Optional[str]:
        """Reply text for a chat message, or None when it is not a `!h ` trigger."""
        query = extract_query(message)
        if query is None:
            return None
        return self.resolve_query(query)

    def resolve_query(self, query: str) -> str:
        """Reply text for an already extracted tag query."""
        table = self.store.table
        tag = self.lookup(table, query)
        if tag is None:
            logger.debug(f"TagResolver: No help found for {query!r}")
            return NOT_FOUND_TEMPLATE.format(tag=query)
        if tag != query:
            logger.debug(f"TagResolver: {query!r} resolved to nearest tag {tag!r}")
        return self.format_url(tag, table.entries[tag])

    def lookup(self, table: TagTable, query: str) -> Optional[str]:
        """The tag to link for `query` under the configured policy."""
        if query in table:
            return query
        # An empty query is never resolved to a neighbour, not even the first tag
        if not query or self.policy is LookupPolicy.EXACT:
            return None
        return nearest_tag(table, query)

    def format_url(self, tag: str, file: str) -> str:
        return f"{self.doc_base_url}/{file}.html#{tag}"
