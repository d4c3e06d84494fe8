"""Request and response bodies of the HTTP API."""

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from maskbid.core.errors import BadRequestError
from maskbid.core.models import Asset, SealedBid

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_body(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate a JSON body, mapping failures to BadRequestError (400)."""
    if not isinstance(payload, dict):
        raise BadRequestError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise BadRequestError("Missing or invalid fields", fields=fields)


class BidSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auction_id: str = Field(alias="auctionId", min_length=1)
    bidder_address: str = Field(alias="bidderAddress")
    encrypted_data: str = Field(alias="encryptedData", min_length=1)
    bid_hash: Optional[str] = Field(default=None, alias="bidHash")
    escrow_tx_hash: Optional[str] = Field(default=None, alias="escrowTxHash")


class AssetResponse(BaseModel):
    assetId: str
    issuer: str
    name: str
    symbol: str
    assetType: str
    description: str
    serialNumber: str
    reservePrice: str
    requiredDeposit: str
    auctionDurationHours: int
    verified: bool
    tokenMinted: str
    tokenRedeemed: str
    uid: Optional[str] = None

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetResponse":
        return cls(
            assetId=str(asset.asset_id),
            issuer=asset.issuer,
            name=asset.name,
            symbol=asset.symbol,
            assetType=asset.asset_type,
            description=asset.description,
            serialNumber=asset.serial_number,
            reservePrice=str(asset.reserve_price),
            requiredDeposit=str(asset.required_deposit),
            auctionDurationHours=asset.auction_duration_hours,
            verified=asset.verified,
            tokenMinted=str(asset.minted_supply),
            tokenRedeemed=str(asset.redeemed_supply),
            uid=asset.uid,
        )


class BidResponse(BaseModel):
    """A stored bid; the ciphertext is never echoed back."""
    bidId: str
    auctionId: str
    bidderAddress: str
    bidHash: str
    status: str

    @classmethod
    def from_bid(cls, bid: SealedBid) -> "BidResponse":
        return cls(
            bidId=bid.bid_id,
            auctionId=bid.auction_id,
            bidderAddress=bid.bidder_address,
            bidHash=bid.commitment_hash,
            status=bid.status.value,
        )
