from __future__ import annotations

from eth_abi import encode
from eth_utils import keccak, to_checksum_address, to_hex

from berabundle.core.adapters.models import SafeTransaction

DOMAIN_TYPEHASH = keccak(text="EIP712Domain(uint256 chainId,address verifyingContract)")
SAFE_TX_TYPEHASH = keccak(
    text=(
        "SafeTx(address to,uint256 value,bytes data,uint8 operation,"
        "uint256 safeTxGas,uint256 baseGas,uint256 gasPrice,address gasToken,"
        "address refundReceiver,uint256 nonce)"
    )
)

_STRUCT_TYPES = [
    "bytes32",
    "address",
    "uint256",
    "bytes32",
    "uint8",
    "uint256",
    "uint256",
    "uint256",
    "address",
    "address",
    "uint256",
]


def compute_domain_separator(verifying_contract: str, chain_id: int) -> bytes:
    return keccak(
        encode(
            ["bytes32", "uint256", "address"],
            [DOMAIN_TYPEHASH, int(chain_id), to_checksum_address(verifying_contract)],
        )
    )


def compute_struct_hash(tx: SafeTransaction) -> bytes:
    return keccak(
        encode(
            _STRUCT_TYPES,
            [
                SAFE_TX_TYPEHASH,
                tx.to,
                tx.value,
                keccak(tx.data_bytes),
                tx.operation,
                tx.safe_tx_gas,
                tx.base_gas,
                tx.gas_price,
                tx.gas_token,
                tx.refund_receiver,
                tx.nonce,
            ],
        )
    )


def compute_safe_tx_hash(
    verifying_contract: str, chain_id: int, tx: SafeTransaction
) -> bytes:
    """EIP-712 hash of ``tx`` for the Safe at ``verifying_contract``.

    Pure function of its inputs; used both to sign and to cross-check the
    hash reported by the transaction service.
    """
    return keccak(
        b"\x19\x01"
        + compute_domain_separator(verifying_contract, chain_id)
        + compute_struct_hash(tx)
    )


def compute_safe_tx_hash_hex(
    verifying_contract: str, chain_id: int, tx: SafeTransaction
) -> str:
    return to_hex(compute_safe_tx_hash(verifying_contract, chain_id, tx))
