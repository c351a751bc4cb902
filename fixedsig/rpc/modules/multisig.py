"""
fixedsig msig_* RPC Methods

Governance operations and read-only queries over the node's multisig
instance. Operations take an explicit ``sender``; the node stamps every call
with the current BlockInfo from its clock.
"""

from typing import Any, Dict, List, Optional

from ...multisig.timing import BlockInfo, Expiration
from ..server import RPCError, RPCErrorCode, RPCModule, rpc_method


class MultisigModule(RPCModule):
    """
    Multisig RPC methods (msig_* namespace).
    """

    namespace = "msig"

    def _require_engine(self) -> None:
        if not self.context or not self.context.engine:
            raise RPCError(RPCErrorCode.RESOURCE_UNAVAILABLE, "Multisig not initialized")

    def _block(self) -> BlockInfo:
        self._require_engine()
        return self.context.clock.current()

    # ── Operations ────────────────────────────────────────────────────

    @rpc_method
    async def propose(
        self,
        sender: str,
        title: str,
        description: str = "",
        actions: Optional[List[Any]] = None,
        latest: Optional[Dict[str, Any]] = None,
    ) -> Dict:
        """
        Create a proposal.

        Args:
            sender: Proposing voter
            title: Short title
            description: Rationale
            actions: Ordered opaque action payloads
            latest: Optional explicit expiry, e.g. {"at_height": 120}

        Returns:
            {"proposal_id": n}
        """
        block = self._block()
        expires = Expiration.from_dict(latest) if latest is not None else None
        proposal_id = self.context.engine.propose(
            sender, title, description, list(actions or []), block, latest=expires
        )
        return {"proposal_id": proposal_id}

    @rpc_method
    async def vote(self, sender: str, proposal_id: int, vote: str) -> Dict:
        """
        Cast a ballot: "yes", "no", "abstain" or "veto".

        Returns:
            {"proposal_id": n, "status": <status after the ballot>}
        """
        block = self._block()
        status = self.context.engine.vote(sender, int(proposal_id), vote, block)
        return {"proposal_id": int(proposal_id), "status": status.name}

    @rpc_method
    async def execute(self, sender: str, proposal_id: int) -> Dict:
        """
        Dispatch a Passed proposal.

        Returns:
            {"proposal_id": n, "status": "EXECUTED", "result": <batch result>}
        """
        block = self._block()
        result = self.context.engine.execute(sender, int(proposal_id), block)
        return {"proposal_id": int(proposal_id), "status": "EXECUTED", "result": result}

    @rpc_method
    async def close(self, sender: str, proposal_id: int) -> Dict:
        block = self._block()
        self.context.engine.close(sender, int(proposal_id), block)
        return {"proposal_id": int(proposal_id), "status": "REJECTED"}

    # ── Queries ───────────────────────────────────────────────────────

    @rpc_method
    async def getProposal(self, proposal_id: int) -> Dict:
        block = self._block()
        return self.context.queries.proposal(int(proposal_id), block)

    @rpc_method
    async def listProposals(
        self, start_after: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Dict]:
        """Ascending by id."""
        block = self._block()
        return self.context.queries.list_proposals(block, start_after=start_after, limit=limit)

    @rpc_method
    async def reverseProposals(
        self, start_before: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Dict]:
        """Descending by id."""
        block = self._block()
        return self.context.queries.reverse_proposals(
            block, start_before=start_before, limit=limit
        )

    @rpc_method
    async def getVote(self, proposal_id: int, voter: str) -> Optional[Dict]:
        """Returns null when the voter has not voted."""
        self._require_engine()
        return self.context.queries.vote(int(proposal_id), voter)

    @rpc_method
    async def listVotes(
        self,
        proposal_id: int,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict]:
        self._require_engine()
        return self.context.queries.list_votes(
            int(proposal_id), start_after=start_after, limit=limit
        )

    @rpc_method
    async def getThreshold(self, proposal_id: Optional[int] = None) -> Dict:
        block = self._block()
        return self.context.queries.threshold(
            block, int(proposal_id) if proposal_id is not None else None
        )

    @rpc_method
    async def getVoter(self, address: str) -> Dict:
        self._require_engine()
        return self.context.queries.voter(address)

    @rpc_method
    async def listVoters(
        self, start_after: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict]:
        self._require_engine()
        return self.context.queries.voter_list(start_after=start_after, limit=limit)

    @rpc_method
    async def getConfig(self) -> Dict:
        self._require_engine()
        return self.context.queries.config()
