"""
net_* RPC Methods

Network-related JSON-RPC methods.
"""

from ..encoding import encode_quantity
from ..server import RPCModule, rpc_method


class NetModule(RPCModule):
    """
    Network RPC methods (net_* namespace).
    """

    namespace = "net"

    @rpc_method
    async def version(self) -> str:
        """
        Returns the network ID.

        Returns:
            Chain ID as a decimal string
        """
        return str(await self.backend.chain_id())

    @rpc_method
    async def listening(self) -> bool:
        """
        Returns whether the node is listening for connections.
        """
        return await self.backend.listening()

    @rpc_method
    async def peerCount(self) -> str:
        """
        Returns the number of connected peers.

        Returns:
            Peer count (hex)
        """
        return encode_quantity(await self.backend.peer_count())
