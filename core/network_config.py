from __future__ import annotations

from enum import Enum

from solders.pubkey import Pubkey

# Meteora DAMM v2 (cp-amm); same program id on mainnet and devnet.
CP_AMM_PROGRAM_ID = Pubkey.from_string("cpamdpZCGKUy5JxQXB4dcpGPiikHawvSWAd6mEn1sGG")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
# Position NFTs are minted under Token-2022.
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

NATIVE_MINT = "So11111111111111111111111111111111111111112"

# Public endpoint the engine refuses to hammer; a dedicated RPC is required.
PUBLIC_MAINNET_RPC_HOST = "api.mainnet-beta.solana.com"


class NetworkType(Enum):
    MAINNET = "mainnet"
    DEVNET = "devnet"


class NetworkDetector:
    """Helpers for detecting which cluster an RPC URL points at."""

    @staticmethod
    def detect(rpc_url: str) -> NetworkType:
        """Detect network from RPC URL (simple heuristic).

        Price feeds always quote mainnet prices, so a devnet result only
        changes how much the USD figures can be trusted.
        """
        return NetworkType.DEVNET if "devnet" in rpc_url.lower() else NetworkType.MAINNET
