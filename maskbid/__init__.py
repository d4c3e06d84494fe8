"""
MaskBid

Settlement pipeline for a sealed-bid auction marketplace of tokenized
real-world assets:
- Event decoding of the asset and auction contracts' logs
- State synchronization into the off-chain store
- Sealed-bid resolution and on-chain report encoding
"""

__version__ = "0.1.0"
