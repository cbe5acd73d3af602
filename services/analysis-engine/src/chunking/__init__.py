"""Document structure detection, chunking and unit segmentation."""

from .hierarchical_chunker import HierarchicalChunker, optimal_chunk_size
from .structure_classifier import StructureClassifier
from .token_segmenter import SubChunk, TokenSegmenter
from .tokenizers import CharEstimateTokenizer, TiktokenTokenizer, Tokenizer

__all__ = [
    "StructureClassifier",
    "HierarchicalChunker",
    "optimal_chunk_size",
    "TokenSegmenter",
    "SubChunk",
    "Tokenizer",
    "TiktokenTokenizer",
    "CharEstimateTokenizer",
]
