from .streaming import ExtractorState, OutputSink, StreamChannel, StreamingLinkExtractor
from .tokenizer import AnchorTokenizer, extract_links

__all__ = [
    "AnchorTokenizer",
    "ExtractorState",
    "OutputSink",
    "StreamChannel",
    "StreamingLinkExtractor",
    "extract_links",
]
