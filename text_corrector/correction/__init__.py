from text_corrector.correction.chunker import TextChunker, reassemble
from text_corrector.correction.normalizer import ResponseNormalizer
from text_corrector.correction.reconstructor import TextReconstructor
from text_corrector.correction.retry import RetryClass, RetryOrchestrator, RetryPolicy

__all__ = [
    "TextChunker",
    "reassemble",
    "ResponseNormalizer",
    "TextReconstructor",
    "RetryClass",
    "RetryOrchestrator",
    "RetryPolicy",
]
