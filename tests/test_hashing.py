"""Tests for quote hashing, message keys and the message codec."""

import pytest
from eth_abi.packed import encode_packed
from eth_utils import keccak

from conftest import BUS, DST_RFQ, SRC_RFQ
from rfqsettle.errors import InvalidInput
from rfqsettle.hashing import (
    domain_hash,
    encode_quote,
    get_quote_hash,
    inbound_message_key,
    message_signing_digest,
)
from rfqsettle.messaging.codec import MessageType, decode_message, encode_message
from rfqsettle.quote import Quote, RouteInfo


class TestQuoteHash:
    """Tests for quote identity."""

    def test_hash_is_keccak_of_packed_fields(self, make_quote):
        """Test hash equals keccak256 over the packed field widths."""
        quote = make_quote()
        expected = keccak(
            encode_packed(
                ["uint64", "address", "uint256", "uint64", "address", "uint256",
                 "uint64", "uint64", "address", "address", "address", "address"],
                [quote.src_chain_id, quote.src_token, quote.src_amount,
                 quote.dst_chain_id, quote.dst_token, quote.dst_amount,
                 quote.deadline, quote.nonce, quote.sender, quote.receiver,
                 quote.refund_to, quote.liquidity_provider],
            )
        )

        assert get_quote_hash(quote) == expected
        assert quote.quote_hash == expected
        assert len(expected) == 32

    def test_packed_encoding_length(self, make_quote):
        """Test packed pre-image keeps declared widths with no padding."""
        # 4 x uint64 + 2 x uint256 + 6 x address
        assert len(encode_quote(make_quote())) == 4 * 8 + 2 * 32 + 6 * 20

    def test_hash_is_deterministic(self, make_quote):
        """Test equal field values give the same hash."""
        assert make_quote().quote_hash == make_quote().quote_hash

    @pytest.mark.parametrize(
        "field,value",
        [
            ("src_amount", 101),
            ("dst_amount", 96),
            ("deadline", 1),
            ("nonce", 2),
            ("receiver", "0x9000000000000000000000000000000000000009"),
            ("liquidity_provider", "0x9000000000000000000000000000000000000009"),
        ],
    )
    def test_any_field_changes_hash(self, make_quote, field, value):
        """Test every field contributes to the hash."""
        assert make_quote(**{field: value}).quote_hash != make_quote().quote_hash

    def test_address_case_does_not_matter(self, make_quote):
        """Test addresses are normalized before hashing."""
        lower = make_quote(receiver="0xabcdef00000000000000000000000000000000ab")
        upper = make_quote(receiver="0xABCDEF00000000000000000000000000000000AB")
        assert lower.quote_hash == upper.quote_hash


class TestQuoteValidation:
    """Tests for quote field validation."""

    def test_invalid_address_rejected(self, make_quote):
        """Test malformed address raises InvalidInput."""
        with pytest.raises(InvalidInput):
            make_quote(sender="0x1234")

    def test_amount_out_of_range(self, make_quote):
        """Test amounts must fit in uint256."""
        with pytest.raises(InvalidInput):
            make_quote(src_amount=2**256)
        with pytest.raises(InvalidInput):
            make_quote(dst_amount=-1)

    def test_chain_id_out_of_range(self, make_quote):
        """Test chain ids must fit in uint64."""
        with pytest.raises(InvalidInput):
            make_quote(dst_chain_id=2**64)

    def test_from_dict_accepts_camel_case_and_strings(self, make_quote):
        """Test from_dict with ABI field names and decimal strings."""
        quote = make_quote()
        data = {k: (str(v) if isinstance(v, int) else v) for k, v in quote.to_abi_dict().items()}

        assert Quote.from_dict(data) == quote
        assert Quote.from_dict(quote.to_dict()) == quote

    def test_from_dict_missing_field(self, make_quote):
        """Test missing field raises InvalidInput."""
        data = make_quote().to_dict()
        del data["nonce"]

        with pytest.raises(InvalidInput, match="nonce"):
            Quote.from_dict(data)


class TestMessageKeys:
    """Tests for inbound message keys and signing digests."""

    def test_inbound_key_depends_on_source(self):
        """Test the key binds chain, sender and message."""
        message = encode_message(MessageType.SRC_RELEASE, b"\x11" * 32)
        key = inbound_message_key(2, DST_RFQ, message)

        assert key != inbound_message_key(3, DST_RFQ, message)
        assert key != inbound_message_key(2, SRC_RFQ, message)
        assert key != inbound_message_key(2, DST_RFQ, encode_message(MessageType.REFUND, b"\x11" * 32))

    def test_signing_digest_bound_to_chain_and_bus(self):
        """Test signatures for one chain cannot be replayed on another."""
        route = RouteInfo(sender=DST_RFQ, receiver=SRC_RFQ, src_chain_id=2, src_tx_hash=b"\x01" * 32)
        message = encode_message(MessageType.SRC_RELEASE, b"\x22" * 32)
        digest = message_signing_digest(1, BUS, route, message)

        assert digest != message_signing_digest(5, BUS, route, message)
        assert digest != message_signing_digest(1, SRC_RFQ, route, message)
        assert domain_hash(1, BUS) != domain_hash(5, BUS)

    def test_route_tx_hash_accepts_hex(self):
        """Test src_tx_hash may be given as 0x-hex."""
        route = RouteInfo(sender=DST_RFQ, receiver=SRC_RFQ, src_chain_id=2, src_tx_hash="0x" + "ab" * 32)
        assert route.src_tx_hash == b"\xab" * 32

    def test_route_tx_hash_must_be_32_bytes(self):
        """Test a short transaction hash is rejected."""
        with pytest.raises(InvalidInput):
            RouteInfo(sender=DST_RFQ, receiver=SRC_RFQ, src_chain_id=2, src_tx_hash=b"\x01" * 31)


class TestMessageCodec:
    """Tests for RFQ message encoding."""

    def test_encode_decode(self):
        """Test a message decodes to its type and hash."""
        message = encode_message(MessageType.REFUND, b"\x33" * 32)

        assert len(message) == 64
        assert decode_message(message) == (MessageType.REFUND, b"\x33" * 32)

    def test_wrong_length(self):
        """Test truncated message raises InvalidInput."""
        with pytest.raises(InvalidInput):
            decode_message(b"\x00" * 63)

    def test_unknown_type(self):
        """Test unknown message type raises InvalidInput."""
        message = (7).to_bytes(32, "big") + b"\x44" * 32
        with pytest.raises(InvalidInput):
            decode_message(message)

    def test_type_out_of_uint8_range(self):
        """Test non-zero padding in the type word raises InvalidInput."""
        message = (1 << 200).to_bytes(32, "big") + b"\x44" * 32
        with pytest.raises(InvalidInput):
            decode_message(message)
