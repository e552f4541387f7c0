"""Structure-tree normalization for tagged PDFs."""

from pdf_tag_normalizer.config import NormalizerConfig
from pdf_tag_normalizer.structure_tree import StructureTree, TreeConsistencyError
from pdf_tag_normalizer.tag_normalizer import NormalizationResult, TagNormalizer, normalize

__all__ = [
    "NormalizationResult",
    "NormalizerConfig",
    "StructureTree",
    "TagNormalizer",
    "TreeConsistencyError",
    "normalize",
]
