"""
Withdrawal preparation.

Pipeline for prepare_withdrawal(asset, amount, recipient):

1. Select the smallest note covering `amount`
2. Derive its secrets and the change note's secrets
3. State-tree proof of the note's commitment, ASP proof of its label
4. Relayer auction; the winner's committed withdrawal data is what the
   proof must bind
5. context = H(entrypoint, withdrawal data, pool scope)
6. Prove with the "withdraw" circuit (long-running; no lock is held)

Any failure aborts the whole preparation. Selection and derivation are
deterministic, so retrying from scratch is always safe.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import address_to_hex
from privacy_pools.crypto.commitment import context_of
from privacy_pools.crypto.derivation import Secret
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField
from privacy_pools.crypto.merkle import MerkleProof
from privacy_pools.account.views import AccountView, Note
from privacy_pools.relayer.auction import QuoteResult, RelayerAuction
from privacy_pools.relayer.models import ProofPayload, RelayRequest, WithdrawalPayload, int_to_hex

logger = logging.getLogger("privacy_pools.withdrawal")

WITHDRAW_CIRCUIT = "withdraw"


class WithdrawalError(PrivacyPoolsError):
    """Raised when a withdrawal cannot be assembled from the synced state."""
    pass


@dataclass(frozen=True)
class ProofResult:
    """Groth16 proof and public signals returned by a prover."""
    pi_a: tuple[int, ...]
    pi_b: tuple[tuple[int, ...], ...]
    pi_c: tuple[int, ...]
    public_signals: tuple[int, ...]

    @classmethod
    def from_snarkjs(cls, data: dict[str, Any]) -> ProofResult:
        """Accept snarkjs-style {"proof": {pi_a, pi_b, pi_c}, "publicSignals": [...]}."""
        proof = data["proof"]
        return cls(
            pi_a=tuple(int(x) for x in proof["pi_a"]),
            pi_b=tuple(tuple(int(x) for x in row) for row in proof["pi_b"]),
            pi_c=tuple(int(x) for x in proof["pi_c"]),
            public_signals=tuple(int(x) for x in data["publicSignals"]),
        )

    def to_payload(self) -> ProofPayload:
        return ProofPayload(
            pi_a=[str(x) for x in self.pi_a],
            pi_b=[[str(x) for x in row] for row in self.pi_b],
            pi_c=[str(x) for x in self.pi_c],
        )


class Prover(Protocol):
    """
    Zero-knowledge prover for a named circuit.

    `prove` may be a plain function (run in a worker thread) or a coroutine
    function. It may return a ProofResult or a snarkjs-style dict.
    """

    def prove(self, circuit: str, inputs: dict[str, Any]) -> Any: ...


@dataclass
class WithdrawalBundle:
    """Everything needed to relay one withdrawal."""
    chain_id: int
    entrypoint: int
    asset: int
    amount: int
    recipient: int
    scope: int
    context: int
    note: Note
    change_note: Note
    quote: QuoteResult
    proof: ProofResult
    state_proof: MerkleProof
    asp_proof: MerkleProof
    inputs: dict[str, Any] = field(repr=False, default_factory=dict)

    @property
    def withdrawal_data(self) -> bytes:
        return self.quote.withdrawal_data

    def relay_request(self) -> RelayRequest:
        """Body for the winning relayer's /request endpoint."""
        return RelayRequest(
            withdrawal=WithdrawalPayload(
                processooor=address_to_hex(self.entrypoint),
                data="0x" + self.withdrawal_data.hex(),
            ),
            public_signals=[str(s) for s in self.proof.public_signals],
            proof=self.proof.to_payload(),
            scope=int_to_hex(self.scope),
            chain_id=int_to_hex(self.chain_id),
            fee_commitment=self.quote.quote.fee_commitment,
        )

    def transaction_data(self) -> dict[str, Any]:
        """Unsigned entrypoint `relay(withdrawal, proof, scope)` call arguments."""
        return {
            "to": address_to_hex(self.entrypoint),
            "function": "relay",
            "withdrawal": {
                "processooor": address_to_hex(self.entrypoint),
                "data": "0x" + self.withdrawal_data.hex(),
            },
            "proof": {
                "pA": list(self.proof.pi_a[:2]),
                "pB": [list(row[:2]) for row in self.proof.pi_b[:2]],
                "pC": list(self.proof.pi_c[:2]),
                "pubSignals": list(self.proof.public_signals),
            },
            "scope": self.scope,
        }


class WithdrawalPreparer:
    """
    Assembles withdrawal proofs for one account on one chain.

    Usage:
        preparer = WithdrawalPreparer(view, prover, auction)
        bundle = await preparer.prepare_withdrawal(asset, 10**18, recipient)
    """

    def __init__(
        self,
        view: AccountView,
        prover: Prover,
        auction: RelayerAuction,
        hasher: HashToField = DEFAULT_HASHER,
    ) -> None:
        self.view = view
        self.prover = prover
        self.auction = auction
        self.hasher = hasher

    async def prepare_withdrawal(self, asset: int, amount: int, recipient: int) -> WithdrawalBundle:
        """
        Build a proven, relay-ready withdrawal of `amount` of `asset` to `recipient`.

        Raises:
            InsufficientNoteError: if no single note covers `amount`.
            MerkleProofError: if the note or its label is missing from a tree.
            NoRelayersAvailableError / AllRelayersFailedError: if no quote was obtained.
            WithdrawalError: if the note's pool scope is unknown.
        """
        if amount <= 0:
            raise ValueError("Withdrawal amount must be positive")

        view = self.view
        note = view.select_note(asset, amount)
        existing = view.existing_note_secrets(note)
        change, change_secret = view.next_note(note, amount)

        pool = view.store.snapshot.pools.get(note.pool)
        if pool is None or pool.scope is None:
            raise WithdrawalError(f"Scope of pool 0x{note.pool:x} is unknown; sync before withdrawing")

        state_proof = view.state_merkle_proof(note)
        asp_proof = view.asp_merkle_proof(note.label)

        quote = await self.auction.get_best_quote(view.chain_id, asset, amount, recipient)
        context = context_of(view.entrypoint, quote.withdrawal_data, pool.scope, self.hasher)

        inputs = self._circuit_inputs(
            context, note, existing, change_secret, amount, state_proof, asp_proof
        )
        proof = await self._prove(inputs)

        logger.info(
            f"Prepared withdrawal of {amount} from deposit {note.deposit_index} "
            f"(lineage {note.withdraw_index}) via relayer {quote.relayer_id} at {quote.fee_bps} bps"
        )
        return WithdrawalBundle(
            chain_id=view.chain_id,
            entrypoint=view.entrypoint,
            asset=asset,
            amount=amount,
            recipient=recipient,
            scope=pool.scope,
            context=context,
            note=note,
            change_note=change,
            quote=quote,
            proof=proof,
            state_proof=state_proof,
            asp_proof=asp_proof,
            inputs=inputs,
        )

    @staticmethod
    def _circuit_inputs(
        context: int,
        note: Note,
        existing: Secret,
        change: Secret,
        amount: int,
        state_proof: MerkleProof,
        asp_proof: MerkleProof,
    ) -> dict[str, Any]:
        return {
            "context": context,
            "label": note.label,
            "existingNullifier": existing.nullifier,
            "existingSecret": existing.salt,
            "existingValue": note.value,
            "newNullifier": change.nullifier,
            "newSecret": change.salt,
            "withdrawnValue": amount,
            "stateIndex": state_proof.index,
            "stateRoot": state_proof.root,
            "stateSiblings": list(state_proof.siblings),
            "stateTreeDepth": state_proof.depth,
            "ASPIndex": asp_proof.index,
            "ASPRoot": asp_proof.root,
            "ASPSiblings": list(asp_proof.siblings),
            "ASPTreeDepth": asp_proof.depth,
        }

    async def _prove(self, inputs: dict[str, Any]) -> ProofResult:
        if inspect.iscoroutinefunction(self.prover.prove):
            result = await self.prover.prove(WITHDRAW_CIRCUIT, inputs)
        else:
            result = await asyncio.to_thread(self.prover.prove, WITHDRAW_CIRCUIT, inputs)
        if isinstance(result, ProofResult):
            return result
        return ProofResult.from_snarkjs(result)
