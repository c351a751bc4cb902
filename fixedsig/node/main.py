# fixedsig/node/main.py
"""
fixedsig HTTP node

Serves one multisig instance over JSON-RPC:

    POST /rpc      JSON-RPC 2.0 (msig_*, net_*)
    GET  /health   liveness and instance summary

The app is built by ``create_app(config)``; uvicorn runs it in factory mode.
"""

import time
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from ..config import FixedSigConfig, load_config
from ..constants import NODE_VERSION
from ..exceptions import ConfigurationError
from ..logger import get_logger
from ..multisig import (
    BANK_CONTRACT,
    ExecutionDispatcher,
    LocalSandbox,
    ProposalStore,
    QueryLayer,
    SystemClock,
    VotingEngine,
    bank_handler,
)
from ..rpc.modules import MultisigModule, NetModule
from ..rpc.server import RPCServer
from ..storage import KeyValueStore, MemoryStore, SQLiteStore

logger = get_logger(__name__)


@dataclass
class NodeContext:
    """Everything the RPC modules reach through ``self.context``."""
    config: FixedSigConfig
    store: KeyValueStore
    sandbox: LocalSandbox
    engine: VotingEngine
    queries: QueryLayer
    clock: Any


# ============================================================================
# ENGINE BOOTSTRAP
# ============================================================================

def default_sandbox(store: KeyValueStore) -> LocalSandbox:
    """Sandbox sharing the engine store, with the built-in bank contract."""
    sandbox = LocalSandbox(store)
    sandbox.register(BANK_CONTRACT, bank_handler)
    return sandbox


def open_store(config: FixedSigConfig) -> KeyValueStore:
    if config.storage.type == "memory":
        logger.info("Using in-memory store; state is lost on shutdown")
        return MemoryStore()
    return SQLiteStore(config.storage.sqlite.path, wal_mode=config.storage.sqlite.wal_mode)


def build_engine(
    config: FixedSigConfig,
    store: KeyValueStore,
    sandbox: Optional[LocalSandbox] = None,
) -> VotingEngine:
    """
    Load the instance persisted in *store*, or instantiate one from the
    [multisig] config section when the store is empty.
    """
    if sandbox is None:
        sandbox = default_sandbox(store)
    dispatcher = ExecutionDispatcher(sandbox, sender=config.multisig.address)

    if ProposalStore(store).load_config() is not None:
        return VotingEngine.load(store, dispatcher)

    ms = config.multisig
    if not ms.is_defined:
        raise ConfigurationError(
            "Store holds no multisig instance and [multisig] defines no voters/threshold"
        )
    engine = VotingEngine.instantiate(
        store,
        ms.build_voters(),
        ms.build_threshold(),
        ms.build_voting_period(),
        dispatcher,
        allow_empty_batch=ms.allow_empty_batch,
        auto_vote_proposer=ms.auto_vote_proposer,
        reject_on_dispatch_failure=ms.reject_on_dispatch_failure,
    )
    if ms.treasury:
        with store.transaction():
            sandbox.state(BANK_CONTRACT).set(f"balances/{ms.address}", ms.treasury)
        logger.info(f"Treasury funded: {ms.address} holds {ms.treasury}")
    return engine


def open_clock(config: FixedSigConfig, store: KeyValueStore) -> SystemClock:
    """
    SystemClock anchored to the genesis persisted in *store*.

    The first start records ``[node] genesis_time`` (or the current time) and
    the block time; every later start reuses them, so block heights keep
    counting from the same origin across restarts.
    """
    proposals = ProposalStore(store)
    saved = proposals.load_clock()
    if saved is None:
        clock = SystemClock(config.node.genesis_time, config.node.block_time)
        with store.transaction():
            proposals.save_clock(clock.genesis_time, clock.block_time)
        logger.info(f"Clock anchored: {clock!r}")
        return clock

    clock = SystemClock(int(saved["genesis_time"]), int(saved["block_time"]))
    configured = config.node.genesis_time
    genesis_moved = configured is not None and int(configured) != clock.genesis_time
    if genesis_moved or int(config.node.block_time) != clock.block_time:
        logger.warning(
            f"[node] genesis_time/block_time differ from the stored clock; keeping {clock!r}"
        )
    return clock


def build_context(
    config: FixedSigConfig,
    store: Optional[KeyValueStore] = None,
    sandbox: Optional[LocalSandbox] = None,
    clock: Any = None,
) -> NodeContext:
    store = store if store is not None else open_store(config)
    if sandbox is None:
        sandbox = default_sandbox(store)
    engine = build_engine(config, store, sandbox)
    if clock is None:
        clock = open_clock(config, store)
    return NodeContext(
        config=config,
        store=store,
        sandbox=sandbox,
        engine=engine,
        queries=QueryLayer(engine),
        clock=clock,
    )


# ============================================================================
# APPLICATION SETUP
# ============================================================================

def create_app(
    config: Optional[FixedSigConfig] = None,
    context: Optional[NodeContext] = None,
) -> FastAPI:
    """
    Build the node application.

    Args:
        config:  Node configuration (default: ``load_config()``)
        context: Pre-built context, e.g. with a ManualClock for tests
    """
    if context is not None:
        config = context.config
    elif config is None:
        config = load_config()
    config.validate()

    if context is None:
        context = build_context(config)

    app = FastAPI(
        title="fixedsig Node",
        description="Fixed-membership weighted multisig governance node.",
        version=NODE_VERSION,
    )
    app.state.context = context
    app.state.startup_time = time.time()

    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    http = config.rpc.http
    if http.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=http.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    rpc_server = RPCServer()
    if config.rpc.modules.msig:
        rpc_server.register_module(MultisigModule(context))
    if config.rpc.modules.net:
        rpc_server.register_module(NetModule(context))
    app.state.rpc_server = rpc_server

    @app.post("/rpc")
    @limiter.limit(f"{http.rate_limit}/minute")
    async def rpc_endpoint(request: Request):
        """JSON-RPC 2.0 endpoint"""
        if not (config.rpc.enabled and http.enabled):
            return JSONResponse(status_code=503, content={"ok": False, "error": "RPC disabled"})
        result = await rpc_server.handle_request(await request.body())
        if result is None:
            return Response(status_code=204)
        # handle_request returns a JSON string; send it raw to avoid double-encoding
        return Response(content=result, media_type="application/json")

    @app.get("/health")
    async def health():
        block = context.clock.current()
        return {
            "ok": True,
            "node_version": NODE_VERSION,
            "uptime": int(time.time() - app.state.startup_time),
            "block": block.to_dict(),
            "voters": len(context.engine.registry),
            "proposals": context.engine.store.proposal_count(),
        }

    @app.on_event("shutdown")
    async def shutdown():
        """Clean shutdown"""
        context.store.close()
        logger.info("Store closed.")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"ok": False, "error": "Internal Server Error"})

    logger.info(
        f"fixedsig node ready: {len(context.engine.registry)} voters, "
        f"{context.engine.store.proposal_count()} proposals, "
        f"methods={len(rpc_server.get_methods())}"
    )
    return app
