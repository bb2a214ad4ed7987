# equipment_parser.py
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)

PROFILES_HEADER = "equipment_inventory_profiles:"

# Item lines: exactly two spaces, a key without colons, then a quoted label
ITEM_PATTERN = re.compile(r'^  (?! )([^:]+?)\s*:\s*"([^"]*)"\s*(?:#.*)?$')


class ScanMode(str, Enum):
    ITEMS = "items"
    EXCLUDED = "excluded"


@dataclass(frozen=True)
class CatalogEntry:
    key: str
    label: str

    def to_dict(self):
        return {"key": self.key, "label": self.label}


class EquipmentCatalogParser:
    def __init__(self):
        self.mode = ScanMode.ITEMS

    def parse_catalog(self, text: str) -> List[CatalogEntry]:
        """
        Extract (key, label) pairs from the item block of equipment.yaml.

        Everything after the profiles header is ignored, so profile names and
        their nested item lists never show up as selectable equipment.
        """
        entries = []
        self.mode = ScanMode.ITEMS

        if not isinstance(text, str):
            return entries

        for line in text.splitlines():
            if self.mode is ScanMode.EXCLUDED:
                break

            line = line.replace('\t', '  ')
            stripped = line.strip()

            if not stripped or stripped.startswith('#'):
                continue

            if line == line.lstrip(' ') and stripped == PROFILES_HEADER:
                self.mode = ScanMode.EXCLUDED
                continue

            item_match = ITEM_PATTERN.match(line)
            if not item_match:
                if line.startswith('  '):
                    logger.debug("Dropping malformed catalog line: %r", line)
                continue

            key = item_match.group(1).strip()
            label = item_match.group(2).strip()
            if not key:
                continue

            entries.append(CatalogEntry(key=key, label=label))

        return entries


# Module-level function mirroring the class API
def parse(text):
    return EquipmentCatalogParser().parse_catalog(text)
