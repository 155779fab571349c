import hashlib

CHAIN_ID_HEX_CHARS = 16  # 64 bits


def to_chain_id(opaque_id) -> int:
    """Map an off-chain identifier (ticket or event UUID) to a uint64 for contract storage.

    SHA-256 of the UTF-8 string form, first 64 bits, read as an unsigned big-endian
    integer. Not injective; used as a correlation key only.
    """
    digest = hashlib.sha256(str(opaque_id).encode("utf-8")).hexdigest()
    return int(digest[:CHAIN_ID_HEX_CHARS], 16)
