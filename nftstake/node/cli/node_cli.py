# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import json
import logging
import os
import time
from uvicorn import Config, Server
import asyncio
from ...protocol.config.params import DECIMALS, DENOM, get_network
from ..core.clock import SystemClock
from ..core.custody import InMemoryNFTCollection, InMemoryRewardToken
from ..core.staker import Staker
from ..storage.db import StorageDB
from ..rpc import api  # import module to set globals

logger = logging.getLogger(__name__)


def build_staker(network: str, datadir: str) -> Staker:
    """Builds a devnet staker whose ledger, collection and balances share one sqlite file in `datadir`."""
    config = get_network(network)
    os.makedirs(datadir, exist_ok=True)

    genesis_path = os.path.join(datadir, "genesis.json")
    first_start = not os.path.exists(genesis_path)
    if not first_start:
        with open(genesis_path, "r") as f:
            genesis_time = json.load(f)["genesis_time"]
    else:
        genesis_time = int(time.time())

    clock = SystemClock(config.block_time_sec, genesis_time=genesis_time)
    db = StorageDB(os.path.join(datadir, "staking.db"))

    # Collection items and balances live in the same database as the ledger
    collection = InMemoryNFTCollection(db=db)
    reward_token = InMemoryRewardToken(db=db)
    if config.reward_pool_premine and not reward_token.has_balance(reward_token.pool_address):
        reward_token.fund_pool(config.reward_pool_premine)

    staker = Staker.create(config, collection, reward_token, clock, db=db)

    # Genesis time is fixed only once the node has been built
    if first_start:
        with open(genesis_path, "w") as f:
            json.dump({"genesis_time": genesis_time, "network": config.network_id}, f)
        logger.info(f"Wrote genesis to {genesis_path}")
    return staker


def cmd_info(args):
    config = get_network(args.network)
    print(json.dumps(config.to_dict(), indent=2))
    print(f"Reward per block: {config.reward_per_block / 10**DECIMALS} {DENOM.upper()}")


def cmd_run(args):
    staker = build_staker(args.network, args.datadir)
    api.staker = staker
    logger.info(
        f"Starting {staker.config.network_id} staking node at height {staker.clock.height()} "
        f"on {args.host}:{args.port}"
    )
    server = Server(Config(app=api.app, host=args.host, port=args.port, log_level="info"))
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass
    finally:
        staker.db.close()


def main():
    parser = argparse.ArgumentParser(description="NFT Staking Node CLI")
    parser.add_argument("--datadir", default="./.nftstake", help="Data directory")
    parser.add_argument("--network", default=None, help="Network preset (default: $NFTSTAKE_NETWORK or devnet)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("info", help="Print network configuration")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "info":
        cmd_info(args)
    elif args.command == "run":
        cmd_run(args)


if __name__ == "__main__":
    main()
