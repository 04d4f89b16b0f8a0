"""
web3_* RPC Methods

Utility JSON-RPC methods.
"""

from eth_hash.auto import keccak

from ..encoding import decode_data, encode_data
from ..server import Param, RPCModule, rpc_method


class Web3Module(RPCModule):
    """
    Web3 utility methods (web3_* namespace).
    """

    namespace = "web3"

    @rpc_method
    async def clientVersion(self) -> str:
        """
        Returns the client version string reported by the backend.
        """
        return await self.backend.client_version()

    @rpc_method(params=[Param("data", decode_data)])
    async def sha3(self, data: bytes) -> str:
        """
        Returns Keccak-256 hash of input.

        Args:
            data: Input bytes (decoded from 0x-prefixed hex)

        Returns:
            Hash (hex with 0x prefix)
        """
        return encode_data(keccak(data))
