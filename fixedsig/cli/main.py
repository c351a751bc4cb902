#!/usr/bin/env python3
"""
fixedsig CLI

Command-line interface for a fixedsig multisig node.

Usage:
    fixedsig serve [--config FILE] [--host HOST] [--port PORT]
    fixedsig propose <sender> <title> [--description TEXT] [--action JSON]... [--expires-height N | --expires-time T]
    fixedsig vote <sender> <proposal_id> <yes|no|abstain|veto>
    fixedsig execute <sender> <proposal_id>
    fixedsig close <sender> <proposal_id>
    fixedsig proposal <proposal_id>
    fixedsig proposals [--start-after N] [--limit N] [--reverse]
    fixedsig votes <proposal_id>
    fixedsig voters
    fixedsig threshold [proposal_id]
"""

import json
from typing import Any, Dict, List, Optional

import click
import httpx

from ..constants import FIXEDSIG_NODE_HOST, FIXEDSIG_NODE_PORT, NODE_VERSION

DEFAULT_NODE = f"http://{FIXEDSIG_NODE_HOST}:{FIXEDSIG_NODE_PORT}"

STATUS_COLORS = {
    "OPEN": "cyan",
    "PASSED": "green",
    "REJECTED": "red",
    "EXECUTED": "blue",
}


def node_option(func):
    return click.option(
        "--node", "-n", default=DEFAULT_NODE, show_default=True, help="Node RPC URL"
    )(func)


def rpc_call(node: str, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """POST one JSON-RPC request to *node* and return its result."""
    try:
        response = httpx.post(
            f"{node}/rpc",
            json={
                "jsonrpc": "2.0",
                "method": method,
                "params": params or {},
                "id": 1,
            },
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        raise click.ClickException(f"Cannot reach node at {node}: {e}")

    if response.status_code != 200:
        raise click.ClickException(f"Node returned HTTP {response.status_code}")

    body = response.json()
    if "error" in body:
        error = body["error"]
        code = (error.get("data") or {}).get("error")
        prefix = f"{code}: " if code else ""
        raise click.ClickException(f"{prefix}{error.get('message', 'Unknown error')}")
    return body.get("result")


def format_status(status: str) -> str:
    return click.style(status, fg=STATUS_COLORS.get(status, "white"), bold=True)


def echo_proposal_line(proposal: Dict[str, Any]) -> None:
    click.echo(
        f"#{proposal['id']:<5} {format_status(proposal['status']):<20} "
        f"{proposal['title']}  (by {proposal['proposer']})"
    )


@click.group()
@click.version_option(version=NODE_VERSION, prog_name="fixedsig")
def cli():
    """fixedsig Command Line Interface

    Propose, vote on, and execute action batches on a fixed-membership
    weighted multisig node.
    """
    pass


# ── Node ──────────────────────────────────────────────────────────────

@cli.command("serve")
@click.option("--config", "-c", "config_path", default=None, help="Path to config.toml")
@click.option("--host", default=None, help="Override [rpc.http] host")
@click.option("--port", type=int, default=None, help="Override [rpc.http] port")
def serve_cmd(config_path: Optional[str], host: Optional[str], port: Optional[int]):
    """Run the JSON-RPC node."""
    import uvicorn

    from ..config import load_config
    from ..logger import LogManager
    from ..node.main import create_app

    config = load_config(config_path)
    if host:
        config.rpc.http.host = host
    if port:
        config.rpc.http.port = port
    try:
        config.validate()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    LogManager().set_level(config.node.log_level)
    app = create_app(config)
    uvicorn.run(
        app,
        host=config.rpc.http.host,
        port=config.rpc.http.port,
        access_log=False,
        log_config=None,
    )


# ── Operations ────────────────────────────────────────────────────────

@cli.command("propose")
@click.argument("sender")
@click.argument("title")
@click.option("--description", "-d", default="", help="Proposal rationale")
@click.option(
    "--action", "-a", "actions", multiple=True,
    help='Action as JSON, e.g. \'{"contract": "bank", "msg": {...}}\'. Repeatable; order is kept.',
)
@click.option("--expires-height", type=int, default=None, help="Explicit expiry block height")
@click.option("--expires-time", type=int, default=None, help="Explicit expiry unix time")
@node_option
def propose_cmd(
    sender: str,
    title: str,
    description: str,
    actions: List[str],
    expires_height: Optional[int],
    expires_time: Optional[int],
    node: str,
):
    """Create a proposal.

    Examples:

        fixedsig propose alice "Pay bob" -a '{"contract": "bank", "msg": {"send": {"to_address": "bob", "amount": 10}}}'
    """
    if expires_height is not None and expires_time is not None:
        raise click.UsageError("Use only one of --expires-height / --expires-time")

    parsed = []
    for raw in actions:
        try:
            parsed.append(json.loads(raw))
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid action JSON {raw!r}: {e}", param_hint="--action")

    params: Dict[str, Any] = {
        "sender": sender,
        "title": title,
        "description": description,
        "actions": parsed,
    }
    if expires_height is not None:
        params["latest"] = {"at_height": expires_height}
    elif expires_time is not None:
        params["latest"] = {"at_time": expires_time}

    result = rpc_call(node, "msig_propose", params)
    click.echo(click.style("✓ Proposal created", fg="green"))
    click.echo(f"Proposal ID: {result['proposal_id']}")


@cli.command("vote")
@click.argument("sender")
@click.argument("proposal_id", type=int)
@click.argument("vote", type=click.Choice(["yes", "no", "abstain", "veto"], case_sensitive=False))
@node_option
def vote_cmd(sender: str, proposal_id: int, vote: str, node: str):
    """Cast a ballot on a proposal."""
    result = rpc_call(node, "msig_vote", {
        "sender": sender,
        "proposal_id": proposal_id,
        "vote": vote.lower(),
    })
    click.echo(f"Voted {vote.lower()} on #{proposal_id}; status {format_status(result['status'])}")


@cli.command("execute")
@click.argument("sender")
@click.argument("proposal_id", type=int)
@node_option
def execute_cmd(sender: str, proposal_id: int, node: str):
    """Execute a passed proposal."""
    rpc_call(node, "msig_execute", {"sender": sender, "proposal_id": proposal_id})
    click.echo(click.style(f"✓ Proposal #{proposal_id} executed", fg="green"))


@cli.command("close")
@click.argument("sender")
@click.argument("proposal_id", type=int)
@node_option
def close_cmd(sender: str, proposal_id: int, node: str):
    """Close an expired proposal."""
    rpc_call(node, "msig_close", {"sender": sender, "proposal_id": proposal_id})
    click.echo(f"Proposal #{proposal_id} closed; status {format_status('REJECTED')}")


# ── Queries ───────────────────────────────────────────────────────────

@cli.command("proposal")
@click.argument("proposal_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@node_option
def proposal_cmd(proposal_id: int, as_json: bool, node: str):
    """Show one proposal."""
    proposal = rpc_call(node, "msig_getProposal", {"proposal_id": proposal_id})
    if as_json:
        click.echo(json.dumps(proposal, indent=2))
        return

    click.echo()
    click.echo(click.style(f"Proposal #{proposal['id']}: {proposal['title']}", fg="cyan", bold=True))
    click.echo(f"Status:       {format_status(proposal['status'])}")
    click.echo(f"Proposer:     {proposal['proposer']}")
    click.echo(f"Expires:      {proposal['expires']}")
    click.echo(f"Threshold:    {proposal['threshold']}")
    click.echo(f"Total weight: {proposal['total_weight']}")
    if proposal.get("description"):
        click.echo(f"Description:  {proposal['description']}")
    click.echo(f"Actions ({len(proposal['actions'])}):")
    for index, action in enumerate(proposal["actions"]):
        click.echo(f"  {index}. {json.dumps(action)}")


@cli.command("proposals")
@click.option("--start-after", type=int, default=None)
@click.option("--limit", type=int, default=None)
@click.option("--reverse", is_flag=True, help="Newest first")
@node_option
def proposals_cmd(start_after: Optional[int], limit: Optional[int], reverse: bool, node: str):
    """List proposals."""
    if reverse:
        proposals = rpc_call(node, "msig_reverseProposals", {
            "start_before": start_after, "limit": limit,
        })
    else:
        proposals = rpc_call(node, "msig_listProposals", {
            "start_after": start_after, "limit": limit,
        })
    if not proposals:
        click.echo("No proposals.")
        return
    for proposal in proposals:
        echo_proposal_line(proposal)


@cli.command("votes")
@click.argument("proposal_id", type=int)
@click.option("--start-after", default=None, help="Voter address to page after")
@click.option("--limit", type=int, default=None)
@node_option
def votes_cmd(proposal_id: int, start_after: Optional[str], limit: Optional[int], node: str):
    """List ballots on a proposal."""
    ballots = rpc_call(node, "msig_listVotes", {
        "proposal_id": proposal_id, "start_after": start_after, "limit": limit,
    })
    if not ballots:
        click.echo("No votes.")
        return
    for ballot in ballots:
        click.echo(f"{ballot['voter']:<24} {ballot['vote']:<8} weight={ballot['weight']}")


@cli.command("voters")
@click.option("--start-after", default=None)
@click.option("--limit", type=int, default=None)
@node_option
def voters_cmd(start_after: Optional[str], limit: Optional[int], node: str):
    """List registered voters."""
    voters = rpc_call(node, "msig_listVoters", {"start_after": start_after, "limit": limit})
    for voter in voters:
        click.echo(f"{voter['address']:<24} weight={voter['weight']}")


@cli.command("threshold")
@click.argument("proposal_id", type=int, required=False)
@node_option
def threshold_cmd(proposal_id: Optional[int], node: str):
    """Show the threshold rule, or a proposal's tally against it."""
    params = {"proposal_id": proposal_id} if proposal_id is not None else {}
    info = rpc_call(node, "msig_getThreshold", params)
    click.echo(f"Threshold:    {json.dumps(info['threshold'])}")
    click.echo(f"Total weight: {info['total_weight']}")
    if "tally" in info:
        tally = info["tally"]
        click.echo(
            f"Tally:        yes={tally['yes']} no={tally['no']} "
            f"abstain={tally['abstain']} veto={tally['veto']}"
        )
        click.echo(f"Required yes: {info['required_yes']}")
        click.echo(f"Outcome:      {format_status(info['outcome'])}")


if __name__ == "__main__":
    cli()
