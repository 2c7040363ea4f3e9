"""Simplified type names for DWARF type DIEs.

Types are collected into an arena keyed by absolute DIE offset in a single
pass over the compilation units, so resolving a reference is a dictionary
lookup and never re-reads the section.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

BASE_TAG = "DW_TAG_base_type"
POINTER_TAG = "DW_TAG_pointer_type"
TYPEDEF_TAG = "DW_TAG_typedef"
CONST_TAG = "DW_TAG_const_type"

TYPE_TAGS = frozenset({
    BASE_TAG, POINTER_TAG, TYPEDEF_TAG, CONST_TAG,
    "DW_TAG_volatile_type", "DW_TAG_restrict_type", "DW_TAG_structure_type",
    "DW_TAG_union_type", "DW_TAG_enumeration_type", "DW_TAG_array_type",
    "DW_TAG_subroutine_type", "DW_TAG_unspecified_type",
})

# Reference forms whose value is relative to the start of the owning CU.
LOCAL_REF_FORMS = frozenset({
    "DW_FORM_ref1", "DW_FORM_ref2", "DW_FORM_ref4", "DW_FORM_ref8", "DW_FORM_ref_udata",
})

UNKNOWN = "unknown"
VOID = "void"


@dataclass(frozen=True)
class TypeEntry:
    """One type DIE. ``type_ref`` is the absolute offset of DW_AT_type, if any.

    ``has_type`` distinguishes "no DW_AT_type" (void) from a reference that
    could not be turned into an offset (unknown).
    """
    offset: int
    tag: str
    name: Optional[str] = None
    type_ref: Optional[int] = None
    has_type: bool = False


def decode_name(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


def type_reference(die) -> Optional[int]:
    """Absolute offset that a DIE's DW_AT_type points to."""
    attr = die.attributes.get("DW_AT_type")
    if attr is None:
        return None
    if attr.form in LOCAL_REF_FORMS:
        return attr.raw_value + die.cu.cu_offset
    if attr.form == "DW_FORM_ref_addr":
        return attr.raw_value
    # DW_FORM_ref_sig8 and friends point into type units we do not index.
    return None


class DebugTypeGraph:
    """Arena of type entries keyed by absolute DIE offset."""

    def __init__(self, entries: Iterable[TypeEntry] = ()):
        self.entries: Dict[int, TypeEntry] = {entry.offset: entry for entry in entries}

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, offset: int) -> Optional[TypeEntry]:
        return self.entries.get(offset)

    def add_die(self, die) -> None:
        name_attr = die.attributes.get("DW_AT_name")
        self.entries[die.offset] = TypeEntry(
            offset=die.offset,
            tag=die.tag,
            name=decode_name(name_attr.value) if name_attr is not None else None,
            type_ref=type_reference(die),
            has_type="DW_AT_type" in die.attributes,
        )

    @classmethod
    def from_dwarf(cls, dwarf_info) -> "DebugTypeGraph":
        """Collect every type DIE of every compilation unit."""
        graph = cls()
        for cu in dwarf_info.iter_CUs():
            for die in cu.iter_DIEs():
                if die.tag in TYPE_TAGS:
                    graph.add_die(die)
        logger.debug(f"Indexed {len(graph)} type DIEs")
        return graph


class TypeResolver:
    """Maps type offsets to ``float`` / ``double`` / ``int`` / ``pointer`` / raw names."""

    def __init__(self, graph: DebugTypeGraph):
        self.graph = graph
        self._cache: Dict[int, str] = {}

    def resolve(self, offset: Optional[int]) -> str:
        if offset is None:
            return UNKNOWN
        return self._resolve(offset, set())

    def resolve_entry_type(self, entry_has_type: bool, offset: Optional[int]) -> str:
        """Type of a subprogram or parameter: no DW_AT_type means void."""
        if not entry_has_type:
            return VOID
        return self.resolve(offset)

    def _resolve(self, offset: int, active: Set[int]) -> str:
        if offset in self._cache:
            return self._cache[offset]
        if offset in active:
            return UNKNOWN
        active.add(offset)
        result = self._categorize(offset, active)
        active.discard(offset)
        self._cache[offset] = result
        return result

    def _categorize(self, offset: int, active: Set[int]) -> str:
        entry = self.graph.get(offset)
        if entry is None:
            return UNKNOWN

        if entry.tag == BASE_TAG:
            if not entry.name:
                return UNKNOWN
            return simplify_base_type(entry.name)
        if entry.tag == POINTER_TAG:
            return "pointer"
        if entry.tag in (TYPEDEF_TAG, CONST_TAG):
            if not entry.has_type:
                return VOID
            if entry.type_ref is None:
                return UNKNOWN
            return self._resolve(entry.type_ref, active)
        return UNKNOWN


def simplify_base_type(name: str) -> str:
    """``unsigned int`` -> ``int``, ``float`` -> ``float``, others unchanged."""
    if "float" in name:
        return "float"
    if "double" in name:
        return "double"
    if any(word in name for word in ("int", "long", "short", "char")):
        return "int"
    return name
