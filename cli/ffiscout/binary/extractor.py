"""Reading function information out of ELF shared objects with pyelftools."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from elftools.common.exceptions import DWARFError, ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from ..config import FFIScoutConfig
from ..errors import BinaryExtractionError, ObjectOpenError
from ..models import FunctionParam, FunctionSignature
from .types import DebugTypeGraph, TypeResolver, decode_name, type_reference

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"

# What pyelftools raises on malformed sections.
CORRUPT_DATA_ERRORS = (ELFError, DWARFError, ValueError, KeyError, IndexError, EOFError)


class BinarySignatureExtractor:
    """Debug-info signatures and dynamic symbol names of a shared object."""

    def __init__(self, config: Optional[FFIScoutConfig] = None):
        self.config = config or FFIScoutConfig()

    @contextmanager
    def open(self, path) -> Iterator[ELFFile]:
        """Open a shared object for reading.

        Raises:
            ObjectOpenError: The file cannot be read or is not an ELF object
        """
        try:
            stream = open(path, "rb")
        except OSError as e:
            raise ObjectOpenError(path, f"cannot open: {e.strerror or e}")

        with stream:
            if stream.read(4) != ELF_MAGIC:
                raise ObjectOpenError(path, "not an ELF object")
            stream.seek(0)
            try:
                elf = ELFFile(stream)
                # Section headers are read lazily; a truncated object must fail here.
                for section in elf.iter_sections():
                    section.name
            except CORRUPT_DATA_ERRORS + (OSError,) as e:
                raise ObjectOpenError(path, f"malformed ELF object: {e}")
            yield elf

    def extract_debug_signatures(self, path) -> Dict[str, FunctionSignature]:
        """Signatures of every named DW_TAG_subprogram.

        Returns an empty dict when the object carries no DWARF.

        Raises:
            ObjectOpenError: The object cannot be opened
            BinaryExtractionError: The debug info is corrupt
        """
        with self.open(path) as elf:
            try:
                if not elf.has_dwarf_info():
                    logger.info(f"{path}: no debug info")
                    return {}
                dwarf_info = elf.get_dwarf_info()
                resolver = TypeResolver(DebugTypeGraph.from_dwarf(dwarf_info))
                signatures: Dict[str, FunctionSignature] = {}
                declared_only = set()
                for cu in dwarf_info.iter_CUs():
                    for die in cu.iter_DIEs():
                        if die.tag != "DW_TAG_subprogram":
                            continue
                        name_attr = die.attributes.get("DW_AT_name")
                        if name_attr is None:
                            continue
                        name = decode_name(name_attr.value)
                        is_declaration = "DW_AT_declaration" in die.attributes
                        # A definition wins over a bare declaration of the same name.
                        if name in signatures and (is_declaration or name not in declared_only):
                            continue
                        signatures[name] = self._subprogram_signature(die, resolver)
                        if is_declaration:
                            declared_only.add(name)
                        else:
                            declared_only.discard(name)
            except CORRUPT_DATA_ERRORS as e:
                raise BinaryExtractionError(path, f"corrupt debug info: {e}")

        logger.info(f"{path}: {len(signatures)} signatures from debug info")
        return signatures

    @staticmethod
    def _subprogram_signature(die, resolver: TypeResolver) -> FunctionSignature:
        return_type = resolver.resolve_entry_type("DW_AT_type" in die.attributes, type_reference(die))
        params: List[FunctionParam] = []
        # Immediate children only; lexical blocks and nested scopes are not parameters.
        for child in die.iter_children():
            if child.tag == "DW_TAG_formal_parameter":
                name_attr = child.attributes.get("DW_AT_name")
                params.append(FunctionParam(
                    type=resolver.resolve_entry_type("DW_AT_type" in child.attributes, type_reference(child)),
                    name=decode_name(name_attr.value) if name_attr is not None else None,
                ))
            elif child.tag == "DW_TAG_unspecified_parameters":
                params.append(FunctionParam(type="..."))
        return FunctionSignature(return_type=return_type, params=tuple(params))

    def extract_symbol_names(self, path) -> List[str]:
        """Sorted, de-duplicated STT_FUNC names from ``.dynsym``.

        Raises:
            ObjectOpenError: The object cannot be opened
            BinaryExtractionError: The symbol table is corrupt
        """
        with self.open(path) as elf:
            names = set()
            try:
                section = elf.get_section_by_name(".dynsym")
                if section is None or not isinstance(section, SymbolTableSection):
                    logger.info(f"{path}: no dynamic symbol table")
                    return []
                for symbol in section.iter_symbols():
                    if symbol["st_info"]["type"] != "STT_FUNC" or not symbol.name:
                        continue
                    if self.config.exported_only and symbol["st_shndx"] == "SHN_UNDEF":
                        continue
                    names.add(symbol.name)
            except CORRUPT_DATA_ERRORS as e:
                raise BinaryExtractionError(path, f"corrupt symbol table: {e}")

        logger.info(f"{Path(path).name}: {len(names)} function symbols")
        return sorted(names)
