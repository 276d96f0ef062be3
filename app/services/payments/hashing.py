"""
Easebuzz request signing.

Both digests are fixed by the gateway's wire contract: SHA-512, lowercase
hex, pipe-joined fields with ten empty udf fields (eleven separators) between the
customer block and the salt/status. Changing the field order or the
number of pipes breaks compatibility with the gateway.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
import time

# udf1..udf10 left empty: eleven separators
EMPTY_UDF_FIELDS = "|" * 11


def _sha512(value: str) -> str:
    return hashlib.sha512(value.encode("utf-8")).hexdigest()


def forward_hash(
    key: str,
    txnid: str,
    amount: str,
    product_info: str,
    first_name: str,
    email: str,
    salt: str,
) -> str:
    """key|txnid|amount|productinfo|firstname|email|||||||||||salt"""
    return _sha512(
        f"{key}|{txnid}|{amount}|{product_info}|{first_name}|{email}{EMPTY_UDF_FIELDS}{salt}"
    )


def reverse_hash(
    salt: str,
    status: str,
    email: str,
    first_name: str,
    product_info: str,
    amount: str,
    txnid: str,
    key: str,
) -> str:
    """salt|status|||||||||||email|firstname|productinfo|amount|txnid|key"""
    return _sha512(
        f"{salt}|{status}{EMPTY_UDF_FIELDS}{email}|{first_name}|{product_info}|{amount}|{txnid}|{key}"
    )


def verify_reverse_hash(claimed_hash: str | None, **fields: str) -> bool:
    if not claimed_hash:
        return False
    expected = reverse_hash(**fields)
    return hmac.compare_digest(expected, claimed_hash)


def new_txn_id() -> str:
    """TXN_<epoch millis>_<6 random hex chars>"""
    return f"TXN_{time.time_ns() // 1_000_000}_{secrets.token_hex(3).upper()}"
