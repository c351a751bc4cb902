"""
Query Layer Test Suite

Coverage:
  - Effective status for proposals past their deadline (not persisted)
  - Proposal pagination: default and maximum page sizes, start_after,
    newest-first listing
  - Ballot lookups and listings
  - Threshold view with and without a proposal
  - Voter lookups and instance config
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fixedsig.exceptions import NotFound
from fixedsig.multisig import (
    AbsoluteCount,
    BlockInfo,
    Duration,
    ExecutionDispatcher,
    LocalSandbox,
    ProposalStatus,
    QueryLayer,
    Voter,
    VoteOption,
    VotingEngine,
)
from fixedsig.multisig.queries import clamp_limit
from fixedsig.storage import MemoryStore


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ALICE = "alice"
BOB = "bob"
CAROL = "carol"

START = BlockInfo(height=100, time=1_700_000_000)
LATER = BlockInfo(height=120, time=1_700_000_100)

NOOP = {"contract": "noop", "msg": {}}


def make_queries(threshold=None, auto_vote_proposer=True):
    kv = MemoryStore()
    sandbox = LocalSandbox(kv)
    sandbox.register("noop", lambda state, sender, msg: None)
    engine = VotingEngine.instantiate(
        kv,
        [Voter(CAROL, 3), Voter(ALICE, 1), Voter(BOB, 2)],
        threshold or AbsoluteCount(4),
        Duration.height(10),
        ExecutionDispatcher(sandbox),
        auto_vote_proposer=auto_vote_proposer,
    )
    return engine, QueryLayer(engine)


def propose_many(engine, count, proposer=ALICE):
    return [
        engine.propose(proposer, f"Proposal {i}", "", [NOOP], START)
        for i in range(count)
    ]


# ══════════════════════════════════════════════════════════════════════
#  PROPOSALS
# ══════════════════════════════════════════════════════════════════════


class TestProposalQueries:

    def test_proposal_view(self):
        engine, queries = make_queries()
        pid = engine.propose(ALICE, "Pay", "rent", [NOOP], START)
        view = queries.proposal(pid, START)
        assert view["id"] == pid
        assert view["title"] == "Pay"
        assert view["description"] == "rent"
        assert view["status"] == "OPEN"
        assert view["expires"] == {"at_height": 110}
        assert view["threshold"] == {"absolute_count": {"weight": 4}}
        assert view["total_weight"] == 6

    def test_unknown_proposal(self):
        _, queries = make_queries()
        with pytest.raises(NotFound):
            queries.proposal(1, START)

    def test_expired_open_reports_rejected_without_persisting(self):
        engine, queries = make_queries()
        pid = engine.propose(ALICE, "Stale", "", [NOOP], START)
        assert queries.proposal(pid, LATER)["status"] == "REJECTED"
        assert engine.store.require(pid).status == ProposalStatus.OPEN

    def test_passed_stays_passed_after_expiry(self):
        engine, queries = make_queries()
        pid = engine.propose(CAROL, "Go", "", [NOOP], START)
        engine.vote(ALICE, pid, VoteOption.YES, START)
        assert queries.proposal(pid, LATER)["status"] == "PASSED"

    def test_list_default_page(self):
        engine, queries = make_queries()
        propose_many(engine, 12)
        page = queries.list_proposals(START)
        assert [p["id"] for p in page] == list(range(1, 11))

    def test_list_start_after(self):
        engine, queries = make_queries()
        propose_many(engine, 12)
        page = queries.list_proposals(START, start_after=10)
        assert [p["id"] for p in page] == [11, 12]

    def test_list_limit_capped(self):
        engine, queries = make_queries()
        propose_many(engine, 35)
        assert len(queries.list_proposals(START, limit=100)) == 30

    def test_reverse(self):
        engine, queries = make_queries()
        propose_many(engine, 5)
        page = queries.reverse_proposals(START, limit=3)
        assert [p["id"] for p in page] == [5, 4, 3]

    def test_reverse_start_before(self):
        engine, queries = make_queries()
        propose_many(engine, 5)
        page = queries.reverse_proposals(START, start_before=3)
        assert [p["id"] for p in page] == [2, 1]

    def test_listing_uses_effective_status(self):
        engine, queries = make_queries()
        propose_many(engine, 2)
        assert {p["status"] for p in queries.list_proposals(LATER)} == {"REJECTED"}


class TestClampLimit:

    @pytest.mark.parametrize("given, expected", [
        (None, 10),
        (5, 5),
        (30, 30),
        (31, 30),
        (0, 0),
        (-3, 0),
    ])
    def test_clamp(self, given, expected):
        assert clamp_limit(given) == expected


# ══════════════════════════════════════════════════════════════════════
#  BALLOTS
# ══════════════════════════════════════════════════════════════════════


class TestVoteQueries:

    def test_vote_view(self):
        engine, queries = make_queries()
        pid = engine.propose(ALICE, "p", "", [NOOP], START)
        engine.vote(BOB, pid, VoteOption.VETO, BlockInfo(101, START.time + 5))
        assert queries.vote(pid, BOB) == {
            "voter": BOB, "vote": "veto", "weight": 2, "height": 101,
        }

    def test_no_ballot_is_none(self):
        engine, queries = make_queries()
        pid = engine.propose(ALICE, "p", "", [NOOP], START)
        assert queries.vote(pid, CAROL) is None

    def test_vote_unknown_proposal(self):
        _, queries = make_queries()
        with pytest.raises(NotFound):
            queries.vote(9, ALICE)

    def test_list_votes_ordered_by_voter(self):
        engine, queries = make_queries(threshold=AbsoluteCount(6))
        pid = engine.propose(CAROL, "p", "", [NOOP], START)
        engine.vote(ALICE, pid, VoteOption.YES, START)
        votes = queries.list_votes(pid)
        assert [v["voter"] for v in votes] == [ALICE, CAROL]

    def test_list_votes_start_after(self):
        engine, queries = make_queries(threshold=AbsoluteCount(6))
        pid = engine.propose(CAROL, "p", "", [NOOP], START)
        engine.vote(ALICE, pid, VoteOption.YES, START)
        engine.vote(BOB, pid, VoteOption.YES, START)
        votes = queries.list_votes(pid, start_after=ALICE, limit=1)
        assert [v["voter"] for v in votes] == [BOB]

    def test_list_votes_unknown_proposal(self):
        _, queries = make_queries()
        with pytest.raises(NotFound):
            queries.list_votes(3)


# ══════════════════════════════════════════════════════════════════════
#  THRESHOLD / VOTERS / CONFIG
# ══════════════════════════════════════════════════════════════════════


class TestThresholdQuery:

    def test_without_proposal(self):
        _, queries = make_queries()
        assert queries.threshold(START) == {
            "threshold": {"absolute_count": {"weight": 4}},
            "total_weight": 6,
        }

    def test_with_proposal(self):
        engine, queries = make_queries()
        pid = engine.propose(BOB, "p", "", [NOOP], START)
        engine.vote(ALICE, pid, VoteOption.ABSTAIN, START)
        info = queries.threshold(START, pid)
        assert info["tally"] == {"yes": 2, "no": 0, "abstain": 1, "veto": 0, "total": 3}
        assert info["required_yes"] == 4
        assert info["outcome"] == "OPEN"
        assert info["status"] == "OPEN"
        assert info["total_weight"] == 6

    def test_expired_open_proposal_reads_rejected(self):
        engine, queries = make_queries()
        pid = engine.propose(BOB, "Stale", "", [NOOP], START)
        info = queries.threshold(LATER, pid)
        assert info["outcome"] == "REJECTED"
        assert info["status"] == queries.proposal(pid, LATER)["status"] == "REJECTED"
        assert engine.store.require(pid).status == ProposalStatus.OPEN

    def test_settled_proposal_reports_stored_status(self):
        engine, queries = make_queries()
        pid = engine.propose(CAROL, "Go", "", [NOOP], START)
        engine.vote(ALICE, pid, VoteOption.YES, START)
        assert queries.threshold(LATER, pid)["outcome"] == "PASSED"
        engine.execute(BOB, pid, START)
        info = queries.threshold(LATER, pid)
        assert info["outcome"] == info["status"] == "EXECUTED"

    def test_unknown_proposal(self):
        _, queries = make_queries()
        with pytest.raises(NotFound):
            queries.threshold(START, 5)


class TestVoterQueries:

    def test_member(self):
        _, queries = make_queries()
        assert queries.voter(BOB) == {"address": BOB, "weight": 2}

    def test_non_member(self):
        _, queries = make_queries()
        assert queries.voter("mallory") == {"address": "mallory", "weight": None}

    def test_voter_list_sorted(self):
        _, queries = make_queries()
        assert queries.voter_list() == [
            {"address": ALICE, "weight": 1},
            {"address": BOB, "weight": 2},
            {"address": CAROL, "weight": 3},
        ]

    def test_voter_list_paged(self):
        _, queries = make_queries()
        page = queries.voter_list(start_after=ALICE, limit=1)
        assert page == [{"address": BOB, "weight": 2}]


class TestConfigQuery:

    def test_config(self):
        engine, queries = make_queries(auto_vote_proposer=False)
        propose_many(engine, 2)
        config = queries.config()
        assert config["threshold"] == {"absolute_count": {"weight": 4}}
        assert config["max_voting_period"] == {"height": 10}
        assert config["auto_vote_proposer"] is False
        assert config["allow_empty_batch"] is False
        assert config["voter_count"] == 3
        assert config["total_weight"] == 6
        assert config["proposal_count"] == 2
