"""
nextspark/models/block.py

Block content model.

A content tree is a list whose entries are either:
- a block instance:     {"id", "blockSlug", "props"}
- a pattern reference:  {"type": "pattern", "ref", "id"}
"""

from typing import Any, Dict, Literal
from pydantic import Field

from nextspark.models.base import ApiModel


class BlockInstance(ApiModel):
    id: str = Field(min_length=1)
    block_slug: str = Field(min_length=1)
    props: Dict[str, Any] = Field(default_factory=dict)


class PatternReference(ApiModel):
    type: Literal["pattern"] = "pattern"
    ref: str = Field(min_length=1, description="Referenced pattern id")
    id: str = Field(min_length=1, description="Instance id inside the host tree")
