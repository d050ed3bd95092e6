# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
from decimal import Decimal, InvalidOperation, localcontext
from ..protocol.config.params import DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"
NODE_ENV_VAR = "NFTSTAKE_NODE"


def get_node_url(args):
    return args.node or os.environ.get(NODE_ENV_VAR, DEFAULT_NODE)


def format_amount(raw) -> str:
    return f"{int(raw) / 10**DECIMALS} {DENOM}"


def parse_amount(raw: str) -> int:
    """Converts a decimal token amount to base units without going through float."""
    try:
        with localcontext() as ctx:
            ctx.prec = 100
            units = Decimal(raw).scaleb(DECIMALS)
    except InvalidOperation:
        print(f"Error: invalid amount '{raw}'")
        sys.exit(1)
    if not units.is_finite() or units != units.to_integral_value() or units < 0:
        print(f"Error: amount '{raw}' is not a non-negative multiple of 1e-{DECIMALS} {DENOM}")
        sys.exit(1)
    return int(units)


def _request(method, url, payload=None):
    """Sends one RPC call; prints the node's error and exits on failure."""
    try:
        resp = requests.request(method, url, json=payload, timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        try:
            body = resp.json()
            message = f"{body.get('error', resp.status_code)}: {body.get('detail')}"
        except ValueError:
            message = resp.text
        print(f"Error: {message}")
        sys.exit(1)
    return resp.json()


# --- Query Commands ---
def cmd_query_status(args):
    data = _request("GET", f"{get_node_url(args)}/status")
    print(json.dumps(data, indent=2))


def cmd_query_stake(args):
    data = _request("GET", f"{get_node_url(args)}/stake/{args.address}")
    print(f"Staked:  {data['staked_units']} token(s)")
    print(f"Rewards: {format_amount(data['projected_rewards'])}")


def cmd_query_staker(args):
    data = _request("GET", f"{get_node_url(args)}/staker/{args.address}")
    print(json.dumps(data, indent=2))


def cmd_query_withdrawals(args):
    data = _request("GET", f"{get_node_url(args)}/withdrawals/{args.address}")
    if not data['pending']:
        print("No pending withdrawals.")
        return
    print(f"{'Token':<10} {'Requested':<12} {'Matures'}")
    print("-" * 35)
    for w in data['pending']:
        print(f"{w['token_id']:<10} {w['requested_at_block']:<12} {w['matures_at_block']}")


def cmd_query_rates(args):
    data = _request("GET", f"{get_node_url(args)}/rates")
    print(f"Current: {format_amount(data['current'])} per block")
    print(f"{'From block':<12} {'Reward per block'}")
    print("-" * 40)
    for c in data['changes']:
        print(f"{c['effective_from_block']:<12} {format_amount(c['reward_per_block'])}")


# --- Tx Commands ---
def cmd_tx_stake(args):
    data = _request("POST", f"{get_node_url(args)}/stake", {"owner": args.owner, "token_ids": args.token_ids})
    print(f"Staked. Total staked: {data['staked_units']}")


def cmd_tx_request_withdraw(args):
    data = _request(
        "POST", f"{get_node_url(args)}/request-withdraw", {"owner": args.owner, "token_ids": args.token_ids}
    )
    print(f"Withdrawal requested for {data['token_ids']}")


def cmd_tx_withdraw(args):
    data = _request("POST", f"{get_node_url(args)}/withdraw", {"owner": args.owner, "token_ids": args.token_ids})
    print(f"Withdrawn. Remaining staked: {data['staked_units']}")


def cmd_tx_claim(args):
    data = _request("POST", f"{get_node_url(args)}/claim", {"owner": args.owner})
    print(f"Claimed {format_amount(data['amount'])}")


# --- Admin Commands ---
def cmd_admin_reward_rate(args):
    rate = parse_amount(args.reward)
    data = _request("POST", f"{get_node_url(args)}/admin/reward-rate", {"reward_per_block": rate})
    print(f"Reward set to {format_amount(data['reward_per_block'])} per block from block {data['effective_from_block']}")


def cmd_admin_unbonding(args):
    _request("POST", f"{get_node_url(args)}/admin/unbonding-period", {"value": args.blocks})
    print(f"Unbonding period set to {args.blocks} block(s)")


def cmd_admin_claim_delay(args):
    _request("POST", f"{get_node_url(args)}/admin/claim-delay", {"value": args.seconds})
    print(f"Claim delay set to {args.seconds} second(s)")


# --- Devnet Commands ---
def cmd_devnet_mint(args):
    _request("POST", f"{get_node_url(args)}/devnet/mint", {"owner": args.owner, "token_id": args.token_id})
    print(f"Minted token {args.token_id} to {args.owner}")


def cmd_devnet_approve(args):
    _request("POST", f"{get_node_url(args)}/devnet/approve", {"owner": args.owner, "approved": not args.revoke})
    print(f"Custody approval for {args.owner}: {not args.revoke}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="nftstake", description="NFT Staking Client CLI")
    parser.add_argument("--node", help=f"Node URL (default: ${NODE_ENV_VAR} or {DEFAULT_NODE})")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # query
    p_query = subparsers.add_parser("query", help="Query staking state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node status and current parameters")
    pq_stake = sp_query.add_parser("stake", help="Staked units and claimable rewards")
    pq_stake.add_argument("address", help="Staker address")
    pq_staker = sp_query.add_parser("staker", help="Raw staker record")
    pq_staker.add_argument("address", help="Staker address")
    pq_wd = sp_query.add_parser("withdrawals", help="Pending withdrawal requests")
    pq_wd.add_argument("address", help="Staker address")
    sp_query.add_parser("rates", help="Reward rate history")

    # tx
    p_tx = subparsers.add_parser("tx", help="Staking operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    for name, help_text in (
        ("stake", "Lock tokens and start earning"),
        ("request-withdraw", "Start the unbonding period for staked tokens"),
        ("withdraw", "Return tokens whose unbonding period has passed"),
    ):
        pt = sp_tx.add_parser(name, help=help_text)
        pt.add_argument("token_ids", type=int, nargs="+", help="Token ids")
        pt.add_argument("--from", dest="owner", required=True, help="Staker address")

    pt_claim = sp_tx.add_parser("claim", help="Claim accrued rewards")
    pt_claim.add_argument("--from", dest="owner", required=True, help="Staker address")

    # admin
    p_admin = subparsers.add_parser("admin", help="Administrator operations")
    sp_admin = p_admin.add_subparsers(dest="subcommand")

    pa_rate = sp_admin.add_parser("reward-rate", help="Set reward per staked token per block")
    pa_rate.add_argument("reward", help=f"Reward in {DENOM}")
    pa_unb = sp_admin.add_parser("unbonding-period", help="Set unbonding period")
    pa_unb.add_argument("blocks", type=int, help="Period in blocks")
    pa_delay = sp_admin.add_parser("claim-delay", help="Set minimum delay between claims")
    pa_delay.add_argument("seconds", type=int, help="Delay in seconds")

    # devnet
    p_dev = subparsers.add_parser("devnet", help="Devnet collection helpers")
    sp_dev = p_dev.add_subparsers(dest="subcommand")

    pd_mint = sp_dev.add_parser("mint", help="Mint a collection token")
    pd_mint.add_argument("owner", help="Recipient address")
    pd_mint.add_argument("token_id", type=int, help="Token id")
    pd_appr = sp_dev.add_parser("approve", help="Approve the custodian for all tokens of an owner")
    pd_appr.add_argument("owner", help="Owner address")
    pd_appr.add_argument("--revoke", action="store_true", help="Revoke instead of grant")

    args = parser.parse_args(argv)

    if args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "stake": cmd_query_stake(args)
        elif args.subcommand == "staker": cmd_query_staker(args)
        elif args.subcommand == "withdrawals": cmd_query_withdrawals(args)
        elif args.subcommand == "rates": cmd_query_rates(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "request-withdraw": cmd_tx_request_withdraw(args)
        elif args.subcommand == "withdraw": cmd_tx_withdraw(args)
        elif args.subcommand == "claim": cmd_tx_claim(args)
        else: p_tx.print_help()

    elif args.command == "admin":
        if args.subcommand == "reward-rate": cmd_admin_reward_rate(args)
        elif args.subcommand == "unbonding-period": cmd_admin_unbonding(args)
        elif args.subcommand == "claim-delay": cmd_admin_claim_delay(args)
        else: p_admin.print_help()

    elif args.command == "devnet":
        if args.subcommand == "mint": cmd_devnet_mint(args)
        elif args.subcommand == "approve": cmd_devnet_approve(args)
        else: p_dev.print_help()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
