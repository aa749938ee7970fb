# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict

# Fixed-point constants
TOKEN_MAX_DECIMALS = 18
WEI = 10**TOKEN_MAX_DECIMALS
PERCENT_100_WEI = 100 * WEI
DAYS_IN_YEAR = 365
SECONDS_IN_DAY = 86_400

class LedgerConfig:
    def __init__(self,
                 network_id: str,
                 data_dir: str,
                 rpc_host: str = "127.0.0.1",
                 rpc_port: int = 8000,
                 # Pool creation defaults
                 default_stake_duration_days: int = 180,
                 default_cooldown_period_days: int = 7,
                 default_min_penalty_percent_wei: int = 0,
                 default_max_penalty_percent_wei: int = 0,
                 max_stake_duration_days: int = 3650,
                 # Operator wallet receiving swept penalties, revoked stakes and unallocated reward
                 admin_wallet: str = ""):
        self.network_id = network_id
        self.data_dir = data_dir
        self.rpc_host = rpc_host
        self.rpc_port = rpc_port
        self.default_stake_duration_days = default_stake_duration_days
        self.default_cooldown_period_days = default_cooldown_period_days
        self.default_min_penalty_percent_wei = default_min_penalty_percent_wei
        self.default_max_penalty_percent_wei = default_max_penalty_percent_wei
        self.max_stake_duration_days = max_stake_duration_days
        self.admin_wallet = admin_wallet

NETWORKS: Dict[str, LedgerConfig] = {
    "devnet": LedgerConfig(
        network_id="devnet",
        data_dir="./.stakeledger/devnet",
        default_stake_duration_days=30,
        default_cooldown_period_days=1,
        default_min_penalty_percent_wei=5 * WEI,    # 5%
        default_max_penalty_percent_wei=50 * WEI,   # 50%
        admin_wallet="devnet-admin-wallet",
    ),
    "testnet": LedgerConfig(
        network_id="testnet",
        data_dir="./.stakeledger/testnet",
        rpc_host="0.0.0.0",
        default_stake_duration_days=90,
        default_cooldown_period_days=3,
        default_min_penalty_percent_wei=10 * WEI,
        default_max_penalty_percent_wei=50 * WEI,
    ),
    "mainnet": LedgerConfig(
        network_id="mainnet",
        data_dir="/var/lib/stakeledger",
        rpc_host="0.0.0.0",
        default_stake_duration_days=180,
        default_cooldown_period_days=7,
        default_min_penalty_percent_wei=10 * WEI,
        default_max_penalty_percent_wei=50 * WEI,
    ),
}

def get_network(name: str = None) -> LedgerConfig:
    name = name or os.environ.get("STAKELEDGER_NETWORK", "devnet")
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}' (expected one of {sorted(NETWORKS)})")
    return NETWORKS[name]

CURRENT_NETWORK = get_network()
