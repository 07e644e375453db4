"""
Deterministic wallet derivation and address validation.

Every user gets one wallet per chain. Keys come from a BIP-39 mnemonic,
derived along the chain's BIP-44 path plus one user-specific hardened index,
so the same (mnemonic, user, chain) always yields the same address.
"""

import hashlib
import logging
import re
from dataclasses import dataclass

import base58
from Crypto.Hash import RIPEMD160
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from eth_account.hdaccount import key_from_seed, seed_from_mnemonic
from eth_account.hdaccount.mnemonic import Mnemonic
from eth_keys import keys as eth_keys
from tronpy.keys import PrivateKey as TronPrivateKey
from tronpy.keys import is_base58check_address
from web3 import Web3

from src.blockchain.chains import Chain, get_chain_config
from src.core.encryption import encrypt_data

logger = logging.getLogger(__name__)

BITCOIN_P2PKH_VERSION = b"\x00"
BITCOIN_P2SH_VERSION = b"\x05"
BITCOIN_WIF_VERSION = b"\x80"
BITCOIN_BECH32_HRP = "bc"
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3
BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_PATTERN = re.compile(r"^bc1[ac-hj-np-z02-9]{11,71}$")


class WalletDerivationError(Exception):
    """Key material could not be derived for a wallet."""


@dataclass
class GeneratedWallet:
    """A freshly derived wallet. Secrets are already encrypted."""
    address: str
    public_key: str
    private_key: str
    seed_phrase: str


def user_entropy(user_id: int | str, chain: Chain | str) -> bytes:
    """32 bytes of user- and chain-specific entropy."""
    return hashlib.sha256(f"{user_id}-{Chain(chain).value}".encode()).digest()


def user_derivation_path(user_id: int | str, chain: Chain | str) -> str:
    """The chain's BIP-44 path extended with a hardened per-user index."""
    index = int.from_bytes(user_entropy(user_id, chain)[:4], "big") % 1000
    return f"{get_chain_config(chain).derivation_path}/{index}'"


def derive_user_seed_phrase(user_id: int | str, chain: Chain | str, secret: str) -> str:
    """
    Deterministic 24-word mnemonic for a user's wallet on ``chain``.

    Args:
        user_id: Owner of the wallet
        chain: Chain the wallet is for
        secret: Server-wide seed secret

    Returns:
        BIP-39 English mnemonic
    """
    entropy = hashlib.sha256(f"{user_id}-{secret}-{Chain(chain).value}".encode()).digest()
    return Mnemonic().to_mnemonic(entropy)


def generate_wallet(
    chain: Chain | str,
    user_id: int | str,
    encryption_key: str,
    seed_phrase: str | None = None,
) -> GeneratedWallet:
    """
    Derive a wallet for ``user_id`` on ``chain``.

    Args:
        chain: Chain to derive for
        user_id: Owner of the wallet
        encryption_key: Secret used to encrypt the private key and mnemonic
        seed_phrase: Mnemonic to derive from; a random 24-word one if omitted

    Returns:
        GeneratedWallet with the private key and seed phrase encrypted

    Raises:
        WalletDerivationError: If the mnemonic or key derivation fails
    """
    chain = Chain(chain)
    phrase = seed_phrase or Mnemonic().generate(num_words=24)

    try:
        seed = seed_from_mnemonic(phrase, "")
        if chain == Chain.SOLANA:
            address, public_key, private_key = _derive_solana(seed, user_id)
        else:
            key = key_from_seed(seed, user_derivation_path(user_id, chain))
            if chain == Chain.BITCOIN:
                address, public_key, private_key = _derive_bitcoin(key)
            elif chain == Chain.USDT_ERC20:
                address, public_key, private_key = _derive_ethereum(key)
            else:
                address, public_key, private_key = _derive_tron(key)
    except Exception as e:
        logger.error(f"Wallet derivation failed for {chain.value}: {type(e).__name__}")
        raise WalletDerivationError(f"Failed to derive {chain.value} wallet") from e

    return GeneratedWallet(
        address=address,
        public_key=public_key,
        private_key=encrypt_data(private_key, encryption_key),
        seed_phrase=encrypt_data(phrase, encryption_key),
    )


def _derive_bitcoin(key: bytes) -> tuple[str, str, str]:
    public_key = eth_keys.PrivateKey(key).public_key.to_compressed_bytes()
    sha = hashlib.sha256(public_key).digest()
    hash160 = RIPEMD160.new(sha).digest()
    # Native SegWit (P2WPKH)
    address = encode_segwit_address(BITCOIN_BECH32_HRP, 0, hash160)
    # Compressed-key WIF
    wif = base58.b58encode_check(BITCOIN_WIF_VERSION + key + b"\x01").decode()
    return address, public_key.hex(), wif


def _derive_ethereum(key: bytes) -> tuple[str, str, str]:
    private_key = eth_keys.PrivateKey(key)
    return (
        private_key.public_key.to_checksum_address(),
        private_key.public_key.to_hex(),
        private_key.to_hex(),
    )


def _derive_tron(key: bytes) -> tuple[str, str, str]:
    private_key = TronPrivateKey(key)
    return (
        private_key.public_key.to_base58check_address(),
        private_key.public_key.hex(),
        private_key.hex(),
    )


def _derive_solana(seed: bytes, user_id: int | str) -> tuple[str, str, str]:
    entropy = user_entropy(user_id, Chain.SOLANA)
    secret = bytes(a ^ b for a, b in zip(seed[:32], entropy))
    signing_key = Ed25519PrivateKey.from_private_bytes(secret)
    public_key = signing_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    address = base58.b58encode(public_key).decode()
    # Solana keypair format: 32-byte secret followed by the public key
    keypair = base58.b58encode(secret + public_key).decode()
    return address, public_key.hex(), keypair


def validate_address(address: str, chain: Chain | str) -> bool:
    """
    Check that ``address`` is well formed for ``chain``. Never raises.

    Args:
        address: Address to validate
        chain: Chain the address should belong to

    Returns:
        True if the address is valid for the chain
    """
    try:
        chain = Chain(chain)
        if not isinstance(address, str) or not address:
            return False
        if chain == Chain.BITCOIN:
            return _is_bitcoin_address(address)
        if chain == Chain.SOLANA:
            return len(base58.b58decode(address)) == 32
        if chain == Chain.USDT_ERC20:
            return Web3.is_address(address)
        return is_base58check_address(address)
    except ValueError:
        return False
    except Exception as e:
        logger.warning(f"Error validating {chain} address: {e}")
        return False


def _is_bitcoin_address(address: str) -> bool:
    if address.lower().startswith("bc1"):
        return _is_bech32_address(address)
    payload = base58.b58decode_check(address)
    return len(payload) == 21 and payload[:1] in (BITCOIN_P2PKH_VERSION, BITCOIN_P2SH_VERSION)


def _bech32_polymod(values: list[int]) -> int:
    generator = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = (checksum & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            checksum ^= generator[i] if (top >> i) & 1 else 0
    return checksum


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _to_five_bit_groups(data: bytes) -> list[int]:
    groups = []
    acc = bits = 0
    for value in data:
        acc = (acc << 8) | value
        bits += 8
        while bits >= 5:
            bits -= 5
            groups.append((acc >> bits) & 31)
    if bits:
        groups.append((acc << (5 - bits)) & 31)
    return groups


def encode_segwit_address(hrp: str, witness_version: int, program: bytes) -> str:
    """
    Encode a witness program as a bech32 (v0) or bech32m (v1+) address.

    Args:
        hrp: Human-readable part, ``bc`` on mainnet
        witness_version: SegWit version, 0 for P2WPKH
        program: Witness program, the 20-byte key hash for P2WPKH

    Returns:
        Lowercase SegWit address
    """
    data = [witness_version] + _to_five_bit_groups(program)
    const = BECH32_CONST if witness_version == 0 else BECH32M_CONST
    polymod = _bech32_polymod(_bech32_hrp_expand(hrp) + data + [0] * 6) ^ const
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return f"{hrp}1" + "".join(BECH32_CHARSET[d] for d in data + checksum)


def _is_bech32_address(address: str) -> bool:
    if address != address.lower() and address != address.upper():
        return False
    address = address.lower()
    if not _BECH32_PATTERN.match(address):
        return False
    hrp, data = address[:2], [BECH32_CHARSET.index(c) for c in address[3:]]
    # bech32 for segwit v0, bech32m for taproot
    return _bech32_polymod(_bech32_hrp_expand(hrp) + data) in (BECH32_CONST, BECH32M_CONST)
