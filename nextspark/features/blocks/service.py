"""
nextspark/features/blocks/service.py

Block trees stored on pages and patterns.

Handles:
- Validation of block instances and pattern references
- Pattern id extraction (unique, first-seen order)
- Expansion of pattern references into their blocks
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from nextspark.core.errors import ValidationError
from nextspark.models.block import BlockInstance, PatternReference


logger = logging.getLogger(__name__)


def is_pattern_reference(block: Any) -> bool:
    return isinstance(block, Mapping) and block.get("type") == "pattern"


def validate_blocks(blocks: Optional[Sequence[Any]], allow_pattern_references: bool = True) -> List[Dict[str, Any]]:
    """
    Validate a block tree and return it normalised to camelCase dicts.

    Raises ValidationError listing every malformed entry by index.
    """
    if blocks is None:
        return []
    if not isinstance(blocks, (list, tuple)):
        raise ValidationError("blocks must be a list")

    normalized: List[Dict[str, Any]] = []
    issues: List[Dict[str, Any]] = []
    for index, block in enumerate(blocks):
        if not isinstance(block, Mapping):
            issues.append({"index": index, "msg": "block must be an object"})
            continue
        try:
            if is_pattern_reference(block):
                if not allow_pattern_references:
                    issues.append({"index": index, "msg": "patterns cannot contain pattern references"})
                    continue
                normalized.append(PatternReference.model_validate(block).to_api())
            else:
                normalized.append(BlockInstance.model_validate(block).to_api())
        except PydanticValidationError as exc:
            issues.append({"index": index, "msg": exc.errors()[0].get("msg"), "loc": list(exc.errors()[0].get("loc", ()))})

    if issues:
        raise ValidationError("Invalid blocks", details=issues)
    return normalized


def extract_pattern_ids(blocks: Optional[Sequence[Any]]) -> List[str]:
    """Referenced pattern ids, unique and in first-seen order. Empty refs are kept."""
    seen: Dict[str, None] = {}
    for block in blocks or []:
        if is_pattern_reference(block) and isinstance(block.get("ref"), str):
            seen.setdefault(block["ref"], None)
    return list(seen)


def resolve_pattern_references(blocks: Optional[Sequence[Any]], pattern_cache: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Replace each pattern reference with the referenced pattern's blocks.

    `pattern_cache` maps pattern id to a Pattern (or a dict with "blocks").
    References to missing patterns are dropped with a warning.
    """
    resolved: List[Dict[str, Any]] = []
    for block in blocks or []:
        if not is_pattern_reference(block):
            resolved.append(block)
            continue
        pattern = pattern_cache.get(block.get("ref"))
        if pattern is None:
            logger.warning("[blocks] Pattern not found: %s", block.get("ref"))
            continue
        pattern_blocks = pattern.get("blocks") if isinstance(pattern, Mapping) else pattern.blocks
        resolved.extend(pattern_blocks or [])
    return resolved
