"""
Receipt validation.

Decides whether a mined receipt pays a given intent. Amounts are integers in
the asset's smallest unit; addresses are compared case-insensitively. A
receipt is trusted as final as soon as it is seen.
"""

from payments.chain_client import Receipt, ReceiptLog

# keccak256("Transfer(address,address,uint256)")
ERC20_TRANSFER_TOPIC = (
    "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)


def _same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def decode_transfer_log(entry: ReceiptLog) -> tuple[str, int] | None:
    """Return (destination, value) for an ERC-20 Transfer log, else None."""
    if len(entry.topics) < 3 or entry.topics[0].lower() != ERC20_TRANSFER_TOPIC:
        return None
    destination = "0x" + entry.topics[2][-40:]
    data = entry.data or "0x"
    try:
        value = int(data, 16) if data not in ("0x", "0X") else 0
    except ValueError:
        return None
    return destination, value


def validate_native_transfer(
    receipt: Receipt, expected_recipient: str, expected_amount: int
) -> bool:
    if not receipt.success:
        return False
    if not _same_address(receipt.to_address, expected_recipient):
        return False
    # Over-payment is accepted
    return receipt.value >= expected_amount


def validate_token_transfer(
    receipt: Receipt,
    expected_recipient: str,
    expected_amount: int,
    token_address: str,
) -> bool:
    if not receipt.success:
        return False

    for entry in receipt.logs:
        decoded = decode_transfer_log(entry)
        if decoded is None:
            continue
        destination, value = decoded
        if (
            _same_address(destination, expected_recipient)
            and _same_address(entry.address, token_address)
            and value >= expected_amount
        ):
            return True

    return False


def validate_receipt(
    receipt: Receipt,
    expected_recipient: str,
    expected_amount: int,
    token_address: str | None = None,
) -> bool:
    """Validate against the token path when a token address is given, else native."""
    if token_address:
        return validate_token_transfer(
            receipt, expected_recipient, expected_amount, token_address
        )
    return validate_native_transfer(receipt, expected_recipient, expected_amount)
