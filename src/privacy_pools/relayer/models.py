"""
Relayer wire models.

Relayers speak JSON with camelCase keys and big integers encoded as strings
(decimal or 0x hex). These models are the only place that encoding exists;
everything past them is plain ints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from privacy_pools.core.models import parse_big_int

BigInt = Annotated[int, BeforeValidator(parse_big_int)]

# withdrawalData is abi.encode(address recipient, address feeRecipient, uint256 relayFeeBPS)
_WORD = 32
RELAY_DATA_SIZE = 3 * _WORD


def int_to_hex(value: int) -> str:
    """Minimal 0x-prefixed hex of a non-negative int."""
    if value < 0:
        raise ValueError(f"Cannot hex-encode negative value {value}")
    return hex(value)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with wire (camelCase) keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ==============================================================================
# /quote
# ==============================================================================


class QuoteRequest(_WireModel):
    """Body of POST /quote."""
    chain_id: str = Field(alias="chainId")
    amount: str
    asset: str
    recipient: str
    extra_gas: bool = Field(default=False, alias="extraGas")


class FeeCommitment(_WireModel):
    """Relayer-signed commitment to the withdrawal data it will relay."""
    expiration: int
    withdrawal_data: str = Field(alias="withdrawalData")
    signed_relayer_commitment: str = Field(alias="signedRelayerCommitment")
    extra_gas: bool | None = Field(default=None, alias="extraGas")


class TransactionCost(_WireModel):
    gas: BigInt
    eth: BigInt


class QuoteDetail(_WireModel):
    relay_tx_cost: TransactionCost = Field(alias="relayTxCost")
    extra_gas_fund_amount: TransactionCost | None = Field(default=None, alias="extraGasFundAmount")
    extra_gas_tx_cost: TransactionCost | None = Field(default=None, alias="extraGasTxCost")


class QuoteResponse(_WireModel):
    """Response of POST /quote."""
    base_fee_bps: BigInt = Field(alias="baseFeeBPS")
    fee_bps: BigInt = Field(alias="feeBPS")
    gas_price: BigInt = Field(alias="gasPrice")
    fee_commitment: FeeCommitment = Field(alias="feeCommitment")
    detail: QuoteDetail | None = None


# ==============================================================================
# /details
# ==============================================================================


class FeesResponse(_WireModel):
    """Response of GET /details."""
    fee_bps: BigInt = Field(alias="feeBPS")
    fee_receiver_address: str = Field(alias="feeReceiverAddress")
    chain_id: int = Field(alias="chainId")
    asset_address: str = Field(alias="assetAddress")
    min_withdraw_amount: BigInt = Field(alias="minWithdrawAmount")
    max_gas_price: BigInt = Field(alias="maxGasPrice")


# ==============================================================================
# /request
# ==============================================================================


class WithdrawalPayload(_WireModel):
    processooor: str
    data: str


class ProofPayload(_WireModel):
    pi_a: list[str]
    pi_b: list[list[str]]
    pi_c: list[str]


class RelayRequest(_WireModel):
    """Body of POST /request."""
    withdrawal: WithdrawalPayload
    public_signals: list[str] = Field(alias="publicSignals")
    proof: ProofPayload
    scope: str
    chain_id: str = Field(alias="chainId")
    fee_commitment: FeeCommitment = Field(alias="feeCommitment")


class RelayResponse(_WireModel):
    """Response of POST /request."""
    success: bool
    error: str | None = None
    tx_hash: str | None = Field(default=None, alias="txHash")
    request_id: str | None = Field(default=None, alias="requestId")
    timestamp: int | None = None


# ==============================================================================
# Withdrawal data
# ==============================================================================


@dataclass(frozen=True)
class RelayData:
    """Decoded `withdrawalData` committed by a relayer."""
    recipient: int
    fee_recipient: int
    relay_fee_bps: int

    @classmethod
    def decode(cls, data: bytes | str) -> RelayData:
        """
        Decode abi-encoded (address, address, uint256).

        Raises:
            ValueError: on wrong length or a non-address word.
        """
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data) if isinstance(data, str) else data
        if len(raw) != RELAY_DATA_SIZE:
            raise ValueError(f"withdrawalData must be {RELAY_DATA_SIZE} bytes, got {len(raw)}")
        words = [int.from_bytes(raw[i:i + _WORD], "big") for i in range(0, RELAY_DATA_SIZE, _WORD)]
        for name, word in zip(("recipient", "feeRecipient"), words[:2]):
            if word >> 160:
                raise ValueError(f"withdrawalData {name} is not a 20-byte address")
        return cls(recipient=words[0], fee_recipient=words[1], relay_fee_bps=words[2])

    def encode(self) -> bytes:
        return b"".join(
            word.to_bytes(_WORD, "big")
            for word in (self.recipient, self.fee_recipient, self.relay_fee_bps)
        )
