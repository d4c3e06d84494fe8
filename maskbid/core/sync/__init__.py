"""State synchronization and on-chain report encoding"""
from maskbid.core.sync.report import (
    REPORT_SIZE,
    ResolutionReport,
    encode_report,
    report_to_hex,
    decode_report,
    encode_asset_uid_report,
)
from maskbid.core.sync.synchronizer import StateSynchronizer, SyncResult

__all__ = [
    "REPORT_SIZE",
    "ResolutionReport",
    "encode_report",
    "report_to_hex",
    "decode_report",
    "encode_asset_uid_report",
    "StateSynchronizer",
    "SyncResult",
]
