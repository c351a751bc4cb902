"""
fixedsig net_* RPC Methods

Node-related JSON-RPC methods.
"""

from typing import Dict

from ...constants import NODE_VERSION
from ..server import RPCModule, rpc_method


class NetModule(RPCModule):
    """
    Node RPC methods (net_* namespace).
    """

    namespace = "net"

    @rpc_method
    async def version(self) -> str:
        """
        Returns the node software version.
        """
        return NODE_VERSION

    @rpc_method
    async def blockInfo(self) -> Dict:
        """
        Returns the BlockInfo the node would stamp on an operation right now.
        """
        if self.context and self.context.clock:
            return self.context.clock.current().to_dict()
        return {"height": 0, "time": 0}
