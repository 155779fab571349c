"""
Static ABI of the TicketNFT contract.

Only the members this backend calls or decodes are listed. Event logs are decoded
from these definitions (names, types, indexed flags), never by topic position.
"""

MINT_METHOD = "mintTicket"
MINT_EVENT = "TicketMinted"

RARITY_LABELS = {
    0: "common",
    1: "rare",
    2: "epic",
    3: "legendary",
}
DEFAULT_RARITY = "common"

# field order of the struct returned by getTicketInfo
TICKET_INFO_FIELDS = (
    "id",
    "externalId",
    "name",
    "description",
    "rarity",
    "bannerUrl",
    "startDate",
    "amount",
    "seat",
    "sector",
    "eventId",
    "eventName",
    "createdAt",
)

_TICKET_INFO_TYPES = {
    "id": "uint256",
    "rarity": "uint8",
    "startDate": "uint256",
    "amount": "uint256",
    "eventId": "uint256",
    "createdAt": "uint256",
}


def _view(name, inputs, outputs):
    return {"type": "function", "name": name, "stateMutability": "view", "inputs": inputs, "outputs": outputs}


def _arg(name, type_, indexed=None):
    arg = {"name": name, "type": type_}
    if indexed is not None:
        arg["indexed"] = indexed
    return arg


TICKET_INFO_COMPONENTS = [_arg(field, _TICKET_INFO_TYPES.get(field, "string")) for field in TICKET_INFO_FIELDS]

MINT_TICKET_INPUTS = [
    _arg("to", "address"),
    _arg("id", "uint256"),
    _arg("externalId", "string"),
    _arg("name", "string"),
    _arg("description", "string"),
    _arg("bannerUrl", "string"),
    _arg("startDate", "uint256"),
    _arg("amount", "uint256"),
    _arg("seat", "string"),
    _arg("sector", "string"),
    _arg("eventId", "uint256"),
    _arg("eventName", "string"),
    _arg("createdAt", "uint256"),
    _arg("metadataURI", "string"),
]

TICKET_MINTED_INPUTS = [
    _arg("tokenId", "uint256", indexed=True),
    _arg("to", "address", indexed=True),
    _arg("eventId", "uint256", indexed=True),
    _arg("externalId", "string", indexed=False),
    _arg("rarity", "uint8", indexed=False),
]

TICKET_NFT_ABI = [
    _view("name", [], [_arg("", "string")]),
    _view("symbol", [], [_arg("", "string")]),
    _view("owner", [], [_arg("", "address")]),
    _view("ownerOf", [_arg("tokenId", "uint256")], [_arg("", "address")]),
    _view("balanceOf", [_arg("owner", "address")], [_arg("", "uint256")]),
    _view("tokenURI", [_arg("tokenId", "uint256")], [_arg("", "string")]),
    _view(
        "getTicketInfo",
        [_arg("tokenId", "uint256")],
        [{"name": "", "type": "tuple", "components": TICKET_INFO_COMPONENTS}],
    ),
    {
        "type": "function",
        "name": MINT_METHOD,
        "stateMutability": "nonpayable",
        "inputs": MINT_TICKET_INPUTS,
        "outputs": [_arg("", "uint256")],
    },
    {
        "type": "event",
        "name": MINT_EVENT,
        "anonymous": False,
        "inputs": TICKET_MINTED_INPUTS,
    },
]


def find_event_abi(event_name):
    for entry in TICKET_NFT_ABI:
        if entry["type"] == "event" and entry["name"] == event_name:
            return entry
    raise KeyError(f"event {event_name} is not part of the TicketNFT ABI")


def event_signature(event_abi):
    """Canonical signature, e.g. TicketMinted(uint256,address,uint256,string,uint8)."""
    types = ",".join(arg["type"] for arg in event_abi["inputs"])
    return f"{event_abi['name']}({types})"


def rarity_label(value):
    if value is None:
        return DEFAULT_RARITY
    try:
        return RARITY_LABELS.get(int(value), DEFAULT_RARITY)
    except (TypeError, ValueError):
        return DEFAULT_RARITY


def ticket_info_as_dict(raw):
    """Name the positional tuple returned by getTicketInfo."""
    if isinstance(raw, dict):
        return dict(raw)
    return dict(zip(TICKET_INFO_FIELDS, raw))
