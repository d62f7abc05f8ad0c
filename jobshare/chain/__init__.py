"""Chain of custody.

Models:
- ChainLink: One company's position in a chain
- JobShareChain / CarbonCopyChain: The two persisted chain shapes
- ChainView: Privacy-filtered window of a chain

Builder:
- ChainBuilder: build, extend and filter chains
- get_visible_chain: Viewer plus immediate neighbours
"""

from jobshare.chain.builder import ChainBuilder, get_visible_chain
from jobshare.chain.encodings import (
    CarbonCopyChainAdapter,
    EmbeddedChainAdapter,
    adapter_for,
    detect_encoding,
    originator_link,
)
from jobshare.chain.models import (
    CarbonCopyChain,
    ChainEncoding,
    ChainLink,
    ChainView,
    JobShareChain,
)

__all__ = [
    # Models
    "CarbonCopyChain",
    "ChainEncoding",
    "ChainLink",
    "ChainView",
    "JobShareChain",
    # Encodings
    "CarbonCopyChainAdapter",
    "EmbeddedChainAdapter",
    "adapter_for",
    "detect_encoding",
    "originator_link",
    # Builder
    "ChainBuilder",
    "get_visible_chain",
]
