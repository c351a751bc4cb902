"""
RPC / Node Test Suite

Coverage:
  - msig_* operations and queries through RPCServer.handle_request
  - Multisig error mapping (RPC code + stable error name in ``data``)
  - JSON-RPC envelope: parse errors, unknown methods, batches, notifications
  - Node bootstrap from [multisig] config, treasury funding, reload
  - FastAPI app: POST /rpc and GET /health
"""

import json
import os
import sys
import time

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from starlette.testclient import TestClient

from fixedsig.config import FixedSigConfig
from fixedsig.constants import NODE_VERSION
from fixedsig.exceptions import ConfigurationError, Expired, NotFound, WrongStatus
from fixedsig.multisig import BANK_CONTRACT, ManualClock, bank_balance
from fixedsig.node import build_context, create_app, open_clock
from fixedsig.rpc import MultisigModule, NetModule, RPCErrorCode, RPCServer
from fixedsig.rpc.server import multisig_error_to_rpc
from fixedsig.storage import MemoryStore, SQLiteStore


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ALICE = "alice"
BOB = "bob"
CAROL = "carol"
MALLORY = "mallory"


def make_config(**multisig):
    section = {
        "address": "multisig",
        "voters": [
            {"address": ALICE, "weight": 1},
            {"address": BOB, "weight": 1},
            {"address": CAROL, "weight": 1},
        ],
        "threshold": {"absolute_count": {"weight": 2}},
        "max_voting_period": {"height": 10},
        "treasury": 100,
    }
    section.update(multisig)
    return FixedSigConfig.from_dict({
        "multisig": section,
        "storage": {"type": "memory"},
    })


def make_context(config=None, store=None):
    return build_context(
        config or make_config(),
        store=store if store is not None else MemoryStore(),
        clock=ManualClock(height=100),
    )


def make_server(context):
    server = RPCServer()
    server.register_module(MultisigModule(context))
    server.register_module(NetModule(context))
    return server


async def call(server, method, params=None, request_id=1):
    raw = await server.handle_request({
        "jsonrpc": "2.0",
        "method": method,
        "params": params if params is not None else {},
        "id": request_id,
    })
    return json.loads(raw)


def pay(to_address, amount):
    return {"contract": BANK_CONTRACT, "msg": {"send": {"to_address": to_address, "amount": amount}}}


# ══════════════════════════════════════════════════════════════════════
#  ERROR MAPPING
# ══════════════════════════════════════════════════════════════════════


class TestErrorMapping:

    def test_not_found(self):
        error = multisig_error_to_rpc(NotFound("Proposal #1 not found"))
        assert error.code == RPCErrorCode.RESOURCE_NOT_FOUND
        assert error.data == {"error": "NotFound"}

    def test_rejected_operation(self):
        error = multisig_error_to_rpc(WrongStatus("nope"))
        assert error.code == RPCErrorCode.TRANSACTION_REJECTED
        assert error.to_dict() == {
            "code": -32003, "message": "nope", "data": {"error": "WrongStatus"},
        }


# ══════════════════════════════════════════════════════════════════════
#  msig_* OPERATIONS
# ══════════════════════════════════════════════════════════════════════


class TestMultisigOperations:

    @pytest.mark.asyncio
    async def test_full_lifecycle(self):
        context = make_context()
        server = make_server(context)

        body = await call(server, "msig_propose", {
            "sender": ALICE, "title": "Pay dave", "actions": [pay("dave", 40)],
        })
        pid = body["result"]["proposal_id"]
        assert pid == 1

        body = await call(server, "msig_vote", {"sender": BOB, "proposal_id": pid, "vote": "yes"})
        assert body["result"] == {"proposal_id": 1, "status": "PASSED"}

        body = await call(server, "msig_execute", {"sender": MALLORY, "proposal_id": pid})
        assert body["result"] == {
            "proposal_id": 1,
            "status": "EXECUTED",
            "result": [{"from": "multisig", "to": "dave", "amount": 40}],
        }

        bank = context.sandbox.state(BANK_CONTRACT)
        assert bank_balance(bank, "dave") == 40
        assert bank_balance(bank, "multisig") == 60

    @pytest.mark.asyncio
    async def test_positional_params(self):
        server = make_server(make_context())
        body = await call(server, "msig_propose", [ALICE, "Positional", "", [pay("dave", 1)]])
        assert body["result"] == {"proposal_id": 1}

    @pytest.mark.asyncio
    async def test_outsider_vote_is_unauthorized(self):
        server = make_server(make_context())
        body = await call(server, "msig_vote", {"sender": MALLORY, "proposal_id": 1, "vote": "yes"})
        assert body["error"]["code"] == RPCErrorCode.ACTION_NOT_ALLOWED
        assert body["error"]["data"] == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_unknown_proposal(self):
        server = make_server(make_context())
        body = await call(server, "msig_execute", {"sender": ALICE, "proposal_id": 5})
        assert body["error"]["code"] == RPCErrorCode.RESOURCE_NOT_FOUND
        assert body["error"]["data"] == {"error": "NotFound"}

    @pytest.mark.asyncio
    async def test_double_vote(self):
        server = make_server(make_context())
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1)]})
        body = await call(server, "msig_vote", {"sender": ALICE, "proposal_id": 1, "vote": "no"})
        assert body["error"]["code"] == RPCErrorCode.TRANSACTION_REJECTED
        assert body["error"]["data"] == {"error": "AlreadyVoted"}

    @pytest.mark.asyncio
    async def test_failed_dispatch(self):
        server = make_server(make_context())
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1000)]})
        await call(server, "msig_vote", {"sender": BOB, "proposal_id": 1, "vote": "yes"})
        body = await call(server, "msig_execute", {"sender": ALICE, "proposal_id": 1})
        assert body["error"]["code"] == RPCErrorCode.EXECUTION_ERROR
        assert body["error"]["data"] == {"error": "ExternalFailure"}

        body = await call(server, "msig_getProposal", {"proposal_id": 1})
        assert body["result"]["status"] == "PASSED"

    @pytest.mark.asyncio
    async def test_bad_vote_option_is_invalid_params(self):
        server = make_server(make_context())
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1)]})
        body = await call(server, "msig_vote", {"sender": BOB, "proposal_id": 1, "vote": "maybe"})
        assert body["error"]["code"] == RPCErrorCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_missing_param_is_invalid_params(self):
        server = make_server(make_context())
        body = await call(server, "msig_vote", {"sender": BOB})
        assert body["error"]["code"] == RPCErrorCode.INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_explicit_expiry_and_close(self):
        context = make_context()
        server = make_server(context)
        body = await call(server, "msig_propose", {
            "sender": ALICE, "title": "Short", "actions": [pay("d", 1)],
            "latest": {"at_height": 103},
        })
        pid = body["result"]["proposal_id"]

        body = await call(server, "msig_close", {"sender": MALLORY, "proposal_id": pid})
        assert body["error"]["data"] == {"error": "NotExpired"}

        context.clock.advance(3)
        body = await call(server, "msig_getProposal", {"proposal_id": pid})
        assert body["result"]["status"] == "REJECTED"

        body = await call(server, "msig_close", {"sender": MALLORY, "proposal_id": pid})
        assert body["result"] == {"proposal_id": pid, "status": "REJECTED"}

    @pytest.mark.asyncio
    async def test_wrong_expiration_kind(self):
        server = make_server(make_context())
        body = await call(server, "msig_propose", {
            "sender": ALICE, "title": "t", "actions": [pay("d", 1)],
            "latest": {"at_time": 1_800_000_000},
        })
        assert body["error"]["data"] == {"error": "WrongExpiration"}


# ══════════════════════════════════════════════════════════════════════
#  msig_* QUERIES
# ══════════════════════════════════════════════════════════════════════


class TestMultisigQueries:

    @pytest.mark.asyncio
    async def test_uninitialized_module_is_unavailable(self):
        server = RPCServer()
        server.register_module(MultisigModule(None))
        for method in ("msig_getConfig", "msig_listVoters", "msig_getThreshold"):
            body = await call(server, method)
            assert body["error"]["code"] == RPCErrorCode.RESOURCE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_listing(self):
        server = make_server(make_context())
        for title in ("one", "two", "three"):
            await call(server, "msig_propose", {"sender": ALICE, "title": title, "actions": [pay("d", 1)]})

        body = await call(server, "msig_listProposals", {"start_after": 1})
        assert [p["title"] for p in body["result"]] == ["two", "three"]

        body = await call(server, "msig_reverseProposals", {"limit": 2})
        assert [p["id"] for p in body["result"]] == [3, 2]

    @pytest.mark.asyncio
    async def test_votes(self):
        server = make_server(make_context())
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1)]})

        body = await call(server, "msig_getVote", {"proposal_id": 1, "voter": ALICE})
        assert body["result"]["vote"] == "yes"

        body = await call(server, "msig_getVote", {"proposal_id": 1, "voter": BOB})
        assert body["result"] is None

        body = await call(server, "msig_listVotes", {"proposal_id": 1})
        assert [v["voter"] for v in body["result"]] == [ALICE]

    @pytest.mark.asyncio
    async def test_threshold_voters_config(self):
        server = make_server(make_context())

        body = await call(server, "msig_getThreshold")
        assert body["result"] == {"threshold": {"absolute_count": {"weight": 2}}, "total_weight": 3}

        body = await call(server, "msig_getVoter", {"address": MALLORY})
        assert body["result"] == {"address": MALLORY, "weight": None}

        body = await call(server, "msig_listVoters", {"limit": 2})
        assert [v["address"] for v in body["result"]] == [ALICE, BOB]

        body = await call(server, "msig_getConfig")
        assert body["result"]["voter_count"] == 3
        assert body["result"]["max_voting_period"] == {"height": 10}

    @pytest.mark.asyncio
    async def test_threshold_for_proposal(self):
        server = make_server(make_context())
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1)]})
        body = await call(server, "msig_getThreshold", {"proposal_id": 1})
        assert body["result"]["tally"]["yes"] == 1
        assert body["result"]["required_yes"] == 2
        assert body["result"]["outcome"] == "OPEN"

    @pytest.mark.asyncio
    async def test_threshold_outcome_follows_node_clock(self):
        context = make_context()
        server = make_server(context)
        await call(server, "msig_propose", {"sender": ALICE, "title": "t", "actions": [pay("d", 1)]})
        context.clock.advance(50)
        body = await call(server, "msig_getThreshold", {"proposal_id": 1})
        assert body["result"]["outcome"] == "REJECTED"
        body = await call(server, "msig_getProposal", {"proposal_id": 1})
        assert body["result"]["status"] == "REJECTED"


# ══════════════════════════════════════════════════════════════════════
#  JSON-RPC ENVELOPE / net_*
# ══════════════════════════════════════════════════════════════════════


class TestEnvelope:

    @pytest.mark.asyncio
    async def test_parse_error(self):
        server = make_server(make_context())
        body = json.loads(await server.handle_request("{not json"))
        assert body["error"]["code"] == RPCErrorCode.PARSE_ERROR

    @pytest.mark.asyncio
    async def test_method_not_found(self):
        server = make_server(make_context())
        body = await call(server, "msig_destroy")
        assert body["error"]["code"] == RPCErrorCode.METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_non_object_request(self):
        server = make_server(make_context())
        body = json.loads(await server.handle_request("[1]"))
        assert body[0]["error"]["code"] == RPCErrorCode.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_batch(self):
        server = make_server(make_context())
        raw = await server.handle_request([
            {"jsonrpc": "2.0", "method": "net_version", "id": 1},
            {"jsonrpc": "2.0", "method": "net_blockInfo", "id": 2},
            {"jsonrpc": "2.0", "method": "net_version"},
        ])
        body = json.loads(raw)
        assert [r["id"] for r in body] == [1, 2]
        assert body[0]["result"] == NODE_VERSION
        assert body[1]["result"]["height"] == 100

    @pytest.mark.asyncio
    async def test_notification_returns_nothing(self):
        server = make_server(make_context())
        assert await server.handle_request({"jsonrpc": "2.0", "method": "net_version"}) is None


# ══════════════════════════════════════════════════════════════════════
#  NODE BOOTSTRAP
# ══════════════════════════════════════════════════════════════════════


class TestNodeBootstrap:

    def test_treasury_funded(self):
        context = make_context()
        assert bank_balance(context.sandbox.state(BANK_CONTRACT), "multisig") == 100

    def test_flags_carried_into_engine(self):
        context = make_context(make_config(auto_vote_proposer=False, allow_empty_batch=True))
        assert context.engine.config.auto_vote_proposer is False
        assert context.engine.config.allow_empty_batch is True

    def test_empty_store_without_multisig_section(self):
        config = FixedSigConfig.from_dict({"storage": {"type": "memory"}})
        with pytest.raises(ConfigurationError):
            build_context(config, store=MemoryStore(), clock=ManualClock())

    def test_reload_keeps_persisted_instance(self, tmp_path):
        path = str(tmp_path / "node.db")
        store = SQLiteStore(path)
        context = make_context(store=store)
        context.engine.propose(ALICE, "Keep", "", [pay("d", 1)], context.clock.current())
        store.close()

        # A different [multisig] section is ignored once the store holds an instance
        changed = make_config(threshold={"absolute_count": {"weight": 3}}, treasury=5)
        store = SQLiteStore(path)
        context = make_context(changed, store=store)
        assert context.engine.config.threshold.weight == 2
        assert context.engine.store.proposal_count() == 1
        assert bank_balance(context.sandbox.state(BANK_CONTRACT), "multisig") == 100
        store.close()

    def test_restart_keeps_block_height(self, tmp_path, monkeypatch):
        now = [1_700_000_000]
        monkeypatch.setattr(time, "time", lambda: now[0])
        path = str(tmp_path / "node.db")

        store = SQLiteStore(path)
        context = build_context(make_config(), store=store)
        block = context.clock.current()
        assert block.height == 0
        pid = context.engine.propose(ALICE, "Pay", "", [pay("dave", 5)], block)
        context.engine.vote(BOB, pid, "yes", block)
        now[0] += 1000
        assert context.clock.current().height == 200
        store.close()

        store = SQLiteStore(path)
        context = build_context(make_config(), store=store)
        block = context.clock.current()
        assert block.height == 200
        assert context.engine.store.require(pid).is_expired(block)
        with pytest.raises(Expired):
            context.engine.execute(CAROL, pid, block)
        assert bank_balance(context.sandbox.state(BANK_CONTRACT), "dave") == 0
        store.close()

    def test_stored_clock_wins_over_config(self, monkeypatch):
        monkeypatch.setattr(time, "time", lambda: 1_700_000_500)
        store = MemoryStore()
        config = make_config()
        config.node.genesis_time = 1_700_000_000
        assert open_clock(config, store).current().height == 100

        config.node.genesis_time = 1_700_000_400
        config.node.block_time = 1
        clock = open_clock(config, store)
        assert (clock.genesis_time, clock.block_time) == (1_700_000_000, 5)
        assert clock.current().height == 100


# ══════════════════════════════════════════════════════════════════════
#  HTTP APP
# ══════════════════════════════════════════════════════════════════════


def make_client(config=None):
    app = create_app(context=make_context(config))
    return TestClient(app), app


class TestHTTPApp:

    def test_rpc_endpoint(self):
        client, _ = make_client()
        response = client.post("/rpc", json={
            "jsonrpc": "2.0", "method": "msig_propose", "id": 7,
            "params": {"sender": ALICE, "title": "Over HTTP", "actions": [pay("d", 1)]},
        })
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 7, "result": {"proposal_id": 1}}

    def test_rpc_error_over_http(self):
        client, _ = make_client()
        response = client.post("/rpc", json={
            "jsonrpc": "2.0", "method": "msig_getProposal", "id": 1,
            "params": {"proposal_id": 42},
        })
        assert response.status_code == 200
        assert response.json()["error"]["data"] == {"error": "NotFound"}

    def test_notification_is_no_content(self):
        client, _ = make_client()
        response = client.post("/rpc", json={"jsonrpc": "2.0", "method": "net_version"})
        assert response.status_code == 204

    def test_rpc_disabled(self):
        config = make_config()
        config.rpc.enabled = False
        client, _ = make_client(config)
        response = client.post("/rpc", json={"jsonrpc": "2.0", "method": "net_version", "id": 1})
        assert response.status_code == 503

    def test_disabled_module_not_registered(self):
        config = make_config()
        config.rpc.modules.net = False
        _, app = make_client(config)
        assert "net_version" not in app.state.rpc_server.get_methods()
        assert "msig_propose" in app.state.rpc_server.get_methods()

    def test_health(self):
        client, _ = make_client()
        body = client.get("/health").json()
        assert body["ok"] is True
        assert body["node_version"] == NODE_VERSION
        assert body["block"] == {"height": 100, "time": 1_700_000_000}
        assert body["voters"] == 3
        assert body["proposals"] == 0
