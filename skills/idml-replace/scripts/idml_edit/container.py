#!/usr/bin/env python3
"""
ABOUTME: IDML package reader/writer used as the container collaborator of the walker
ABOUTME: Lists story units in designmap order, reads/writes entries, saves the package
"""

import os
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

from defusedxml import ElementTree as ET

from .common import (
    CONTENT_TAG,
    IDPKG_NS,
    MARKUP_PLACEHOLDER,
    REQUIRED_IDML_ENTRIES,
    STORY_PREFIX,
    ContainerError,
)
from .markup import find_blocks
from .normalizer import normalize


class IdmlContainer:
    """
    In-memory view of an IDML package.

    IDML is a ZIP archive: `designmap.xml` declares the stories in order,
    each story (`Stories/Story_*.xml`) holds the text runs. Every entry is
    read once at load; modified entries replace the originals on save and
    everything else is copied through byte for byte.
    """

    def __init__(self, idml_path: str):
        self.path = Path(idml_path)
        self._entries: Dict[str, bytes] = {}
        self._order: List[str] = []
        self._modified: Dict[str, bytes] = {}
        self._story_files: List[str] = []
        self._load()

    def _load(self):
        try:
            with zipfile.ZipFile(self.path, 'r') as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    self._entries[info.filename] = zf.read(info.filename)
                    self._order.append(info.filename)
        except (OSError, zipfile.BadZipFile) as e:
            raise ContainerError(
                f"Failed to load IDML file {self.path}: {e}. "
                f"Please ensure it's a valid IDML file exported from InDesign."
            ) from e

        self._story_files = self._collect_story_files()
        if not self._story_files:
            raise ContainerError(
                f"No story files found in {self.path}. This may not be a valid IDML file."
            )

    def _collect_story_files(self) -> List[str]:
        """
        Story paths in designmap.xml order; sorted archive names when the
        designmap is missing or unreadable. Stories present in the archive
        but not declared are appended in sorted order.
        """
        present = sorted(
            name for name in self._order
            if name.startswith(STORY_PREFIX) and name.endswith('.xml')
        )
        declared: List[str] = []
        designmap = self._entries.get('designmap.xml')
        if designmap is not None:
            try:
                root = ET.fromstring(designmap)
            except (ET.ParseError, ValueError):
                root = None
            if root is not None:
                for story in root.iter(f'{{{IDPKG_NS}}}Story'):
                    src = story.get('src')
                    if src in present and src not in declared:
                        declared.append(src)
        return declared + [name for name in present if name not in declared]

    # ----------------------------------------------------------
    # Container interface used by the walker
    # ----------------------------------------------------------

    def list_text_units(self) -> List[str]:
        return list(self._story_files)

    def read_unit(self, unit: str) -> str:
        data = self.read_binary(unit)
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ContainerError(f"Story {unit} is not valid UTF-8: {e}") from e

    def write_unit(self, unit: str, content: str):
        self.write_binary(unit, content.encode('utf-8'))

    def read_binary(self, name: str) -> bytes:
        if name in self._modified:
            return self._modified[name]
        try:
            return self._entries[name]
        except KeyError:
            raise ContainerError(f"Entry not found in package: {name}") from None

    def write_binary(self, name: str, data: bytes):
        if name not in self._entries:
            raise ContainerError(f"Cannot write unknown entry: {name}")
        self._modified[name] = data

    # ----------------------------------------------------------
    # Package information
    # ----------------------------------------------------------

    def entries(self) -> List[str]:
        """All package entry names in archive order."""
        return list(self._order)

    @property
    def modified_entries(self) -> List[str]:
        return [name for name in self._order if name in self._modified]

    def validate_structure(self) -> bool:
        """True when the entries every exported IDML carries are present."""
        return all(name in self._entries for name in REQUIRED_IDML_ENTRIES)

    def get_info(self) -> Dict:
        return {
            'story_count': len(self._story_files),
            'has_designmap': 'designmap.xml' in self._entries,
            'is_valid': self.validate_structure(),
        }

    def get_all_text_lines(self, text_tag: str = CONTENT_TAG) -> List[str]:
        """
        Collapsed, non-empty text of every text-bearing element, story order.

        Used to export a glossary template of the document's phrases.
        """
        lines: List[str] = []
        for unit in self._story_files:
            fragment = self.read_unit(unit)
            for block in find_blocks(fragment, text_tag):
                text = normalize(block.inner_text).text.replace(MARKUP_PLACEHOLDER, '').strip()
                if text:
                    lines.append(text)
        return lines

    def save(self, output_path: str, compresslevel: Optional[int] = None) -> Path:
        """
        Write the package with modifications applied.

        `mimetype` goes first and uncompressed, as the IDML package format
        requires; other entries are deflated.
        """
        if compresslevel is None:
            compresslevel = int(os.getenv("IDML_REPLACE_COMPRESSLEVEL", "6"))
        output = Path(output_path)
        names = self.entries()
        if 'mimetype' in names:
            names.remove('mimetype')
            names.insert(0, 'mimetype')
        try:
            with zipfile.ZipFile(output, 'w') as zf:
                for name in names:
                    data = self.read_binary(name)
                    if name == 'mimetype':
                        zf.writestr(name, data, compress_type=zipfile.ZIP_STORED)
                    else:
                        zf.writestr(name, data, compress_type=zipfile.ZIP_DEFLATED,
                                    compresslevel=compresslevel)
        except OSError as e:
            raise ContainerError(f"Failed to write IDML file {output}: {e}") from e
        return output
