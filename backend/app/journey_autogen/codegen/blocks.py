"""
Managed Blocks - machine-owned regions inside hand-edited test files

    // ARTK:BEGIN GENERATED id=test-JRN-0001
    ...generated code...
    // ARTK:END GENERATED

Regeneration replaces only block content. Everything outside a block, and
every malformed region, is carried over byte-for-byte.
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..pipeline.atomic import write_text_atomic

logger = logging.getLogger(__name__)

BLOCK_START = "// ARTK:BEGIN GENERATED"
BLOCK_END = "// ARTK:END GENERATED"
BLOCK_ID_CHARSET = r"[A-Za-z0-9_-]+"

_BEGIN_RE = re.compile(rf"^\s*//\s*ARTK:BEGIN GENERATED(?:\s+id=({BLOCK_ID_CHARSET}))?\s*$")
_END_RE = re.compile(r"^\s*//\s*ARTK:END GENERATED\s*$")


@dataclass
class ManagedBlock:
    """A delimited region of generated code"""
    content: str
    id: Optional[str] = None
    start_line: Optional[int] = None  # 0-based line of the BEGIN marker
    end_line: Optional[int] = None  # 0-based line of the END marker


@dataclass
class BlockWarning:
    type: str  # unclosed | nested | invalid-id
    line: int  # 1-based
    message: str


@dataclass
class BlockExtraction:
    blocks: List[ManagedBlock] = field(default_factory=list)
    preserved_code: List[str] = field(default_factory=list)
    warnings: List[BlockWarning] = field(default_factory=list)

    @property
    def has_blocks(self) -> bool:
        return len(self.blocks) > 0


# ("text", [lines]) or ("block", ManagedBlock, [raw lines incl. markers])
_Segment = Tuple[str, object, List[str]]


def wrap_in_block(content: str, block_id: Optional[str] = None) -> str:
    start = f"{BLOCK_START} id={block_id}" if block_id else BLOCK_START
    return f"{start}\n{content}\n{BLOCK_END}"


def _scan(code: str) -> Tuple[List[_Segment], List[BlockWarning]]:
    """Split code into text and well-formed block segments, in order"""
    segments: List[_Segment] = []
    warnings: List[BlockWarning] = []
    text: List[str] = []

    open_start: Optional[int] = None
    open_id: Optional[str] = None
    open_raw: List[str] = []

    def _flush_text():
        if text:
            segments.append(("text", None, list(text)))
            text.clear()

    lines = code.split("\n")
    for i, line in enumerate(lines):
        begin = _BEGIN_RE.match(line)
        if begin:
            if open_start is not None:
                warnings.append(BlockWarning(
                    "nested", i + 1,
                    f"Nested managed block at line {i + 1}; block opened at line "
                    f"{open_start + 1} is kept as plain text",
                ))
                text.extend(open_raw)
            _flush_text()
            open_start, open_id, open_raw = i, begin.group(1), [line]
            continue

        if "ARTK:BEGIN GENERATED" in line and open_start is None:
            warnings.append(BlockWarning(
                "invalid-id", i + 1,
                f"Unrecognized managed block marker at line {i + 1}; kept as plain text",
            ))

        if _END_RE.match(line) and open_start is not None:
            open_raw.append(line)
            block = ManagedBlock(
                content="\n".join(open_raw[1:-1]),
                id=open_id,
                start_line=open_start,
                end_line=i,
            )
            segments.append(("block", block, open_raw))
            open_start, open_id, open_raw = None, None, []
            continue

        if open_start is not None:
            open_raw.append(line)
        else:
            text.append(line)

    if open_start is not None:
        warnings.append(BlockWarning(
            "unclosed", open_start + 1,
            f"Unclosed managed block starting at line {open_start + 1}; kept as plain text",
        ))
        text.extend(open_raw)
    _flush_text()

    for warning in warnings:
        logger.warning(f"[BLOCKS] {warning.message}")
    return segments, warnings


def extract_managed_blocks(code: str) -> BlockExtraction:
    """
    Find every well-formed managed block.

    Returns:
        BlockExtraction with blocks in file order and all other lines
        (malformed regions included) as preserved code
    """
    segments, warnings = _scan(code)
    extraction = BlockExtraction(warnings=warnings)
    for kind, block, lines in segments:
        if kind == "block":
            extraction.blocks.append(block)
        else:
            extraction.preserved_code.extend(lines)
    return extraction


def inject_managed_blocks(existing_code: str, new_blocks: List[ManagedBlock]) -> str:
    """
    Merge ``new_blocks`` into ``existing_code``.

    Blocks with an id replace the existing block with that id in place.
    Anonymous blocks replace existing anonymous blocks by position. Existing
    blocks with no replacement are kept verbatim, and new blocks that found
    no place are appended at the end.
    """
    if not existing_code.strip():
        return "\n\n".join(wrap_in_block(b.content, b.id) for b in new_blocks)

    segments, _ = _scan(existing_code)

    if not any(kind == "block" for kind, _, _ in segments):
        preserved = "\n".join(line for _, _, lines in segments for line in lines).rstrip()
        new_content = "\n\n".join(wrap_in_block(b.content, b.id) for b in new_blocks)
        return f"{preserved}\n\n{new_content}" if preserved else new_content

    by_id: Dict[str, ManagedBlock] = {}
    for block in new_blocks:
        if block.id:
            by_id.setdefault(block.id, block)
    anonymous = [b for b in new_blocks if not b.id]
    placed: set = set()
    anon_index = 0

    out: List[str] = []
    for kind, block, lines in segments:
        if kind == "text":
            out.extend(lines)
            continue

        replacement = None
        if block.id:
            replacement = by_id.get(block.id)
        elif anon_index < len(anonymous):
            replacement = anonymous[anon_index]
            anon_index += 1

        if replacement is not None and id(replacement) not in placed:
            placed.add(id(replacement))
            # markers keep their original indentation and line ending
            out.extend([lines[0], *replacement.content.split("\n"), lines[-1]])
        else:
            out.extend(lines)

    result = "\n".join(out)
    leftovers = [b for b in new_blocks if id(b) not in placed and (not b.id or by_id[b.id] is b)]
    if leftovers:
        trailing_newline = result.endswith("\n")
        result = result.rstrip("\n")
        for block in leftovers:
            result += "\n\n" + wrap_in_block(block.content, block.id)
        if trailing_newline:
            result += "\n"
    return result


def regenerate_file(path: Union[str, Path], blocks: List[ManagedBlock]) -> str:
    """Inject ``blocks`` into the file at ``path`` (created if missing), atomically"""
    target = Path(path)
    existing = target.read_text(encoding="utf-8") if target.exists() else ""
    updated = inject_managed_blocks(existing, blocks)
    if updated != existing:
        write_text_atomic(target, updated)
        logger.info(f"[BLOCKS] Regenerated {target} ({len(blocks)} blocks)")
    else:
        logger.debug(f"[BLOCKS] {target} unchanged")
    return updated
