"""
Resolution Report - On-chain delivery format for auction outcomes.

Layout (96 bytes, no type tags, decoded positionally by the contract):
    auctionId (uint256) | winner (address, left-padded) | winningAmount (uint256)

winningAmount is in the escrow currency's minor units.
"""

from dataclasses import dataclass
from typing import Union

from maskbid.core.abi import WORD_SIZE, decode_data, encode_tuple
from maskbid.core.errors import MalformedLogError
from maskbid.crypto import bytes_to_hex, hex_to_bytes

REPORT_TYPES = ("uint256", "address", "uint256")
REPORT_SIZE = len(REPORT_TYPES) * WORD_SIZE


@dataclass(frozen=True)
class ResolutionReport:
    """Outcome of one auction, addressed by its on-chain id."""
    auction_id: int
    winner: str
    winning_amount: int

    def encode(self) -> bytes:
        return encode_report(self)

    def to_hex(self) -> str:
        return report_to_hex(self)


def encode_report(report: ResolutionReport) -> bytes:
    """Fixed-width big-endian encoding of a resolution report."""
    return encode_tuple(REPORT_TYPES, [report.auction_id, report.winner, report.winning_amount])


def report_to_hex(report: ResolutionReport) -> str:
    return bytes_to_hex(encode_report(report))


def decode_report(data: Union[bytes, str]) -> ResolutionReport:
    """
    Decode a 96-byte report (raw bytes or 0x-hex).

    Raises:
        MalformedLogError: wrong length or non-canonical address padding
    """
    if isinstance(data, str):
        try:
            data = hex_to_bytes(data)
        except ValueError as e:
            raise MalformedLogError(f"Report is not valid hex: {e}")
    if len(data) != REPORT_SIZE:
        raise MalformedLogError(f"Report must be {REPORT_SIZE} bytes, got {len(data)}")

    auction_id, winner, winning_amount = decode_data(REPORT_TYPES, data)
    return ResolutionReport(auction_id=auction_id, winner=winner, winning_amount=winning_amount)


def encode_asset_uid_report(asset_id: int, uid: str) -> bytes:
    """
    ABI tuple (uint256, string) written back to the asset contract so the
    off-chain metadata id can be looked up from the token.
    """
    return encode_tuple(["uint256", "string"], [asset_id, uid])
