"""Extract DNS query and RPZ block records from BIND log lines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Category(str, Enum):
    DNS_QUERY = "dns_query"
    DNS_BLOCK = "dns_block"


# Checked in order, first match wins. Block lines are checked first.
PATTERNS = (
    (Category.DNS_BLOCK, re.compile(r"([0-9:.]+)#.*: rpz QNAME NXDOMAIN rewrite ([^/]+)/([^/]+)/IN")),
    (Category.DNS_QUERY, re.compile(r"([0-9:.]+)#.*: query: ([^ ]+) IN ([^ ]+) \+")),
)


@dataclass(frozen=True)
class Record:
    """One recognized log event."""

    category: Category
    client: str
    domain: str
    type: str

    def tags(self) -> Dict[str, str]:
        return {"client": self.client, "domain": self.domain, "type": self.type}

    def fields(self) -> Dict[str, object]:
        return {"count": 1}


def extract_record(line: str) -> Optional[Record]:
    """Return the record for ``line`` or None if no pattern matches."""

    for category, pattern in PATTERNS:
        match = pattern.search(line)
        if match:
            client, domain, qtype = match.groups()
            return Record(category=category, client=client, domain=domain, type=qtype)
    return None
