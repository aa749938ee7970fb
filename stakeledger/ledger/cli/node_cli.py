import argparse
import os
import json
import logging
from uvicorn import Config, Server
from ...protocol.config.params import CURRENT_NETWORK
from ...protocol.types.common import Role
from ..core.accounts import TokenBank, RoleRegistry
from ..core.staking import StakingService
from ..storage.db import StorageDB
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

ROLES_FILE = "roles.json"

def cmd_init(args):
    """Initialize node: data dir and role grants."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    roles_path = os.path.join(data_dir, ROLES_FILE)
    if os.path.exists(roles_path):
        print(f"Roles already exist at {roles_path}")
    else:
        admin = args.admin or CURRENT_NETWORK.admin_wallet
        governance = args.governance or admin
        if not admin:
            raise SystemExit("No admin address: pass --admin (network has no default)")
        roles = {
            Role.CONTRACT_ADMIN.value: [admin],
            Role.GOVERNANCE.value: [governance],
        }
        with open(roles_path, "w") as f:
            json.dump(roles, f, indent=2)
        print(f"Granted {Role.CONTRACT_ADMIN.value} to {admin}")
        print(f"Granted {Role.GOVERNANCE.value} to {governance}")

    print(f"\nNode initialized in {data_dir} ({CURRENT_NETWORK.network_id})")

def load_roles(data_dir: str) -> RoleRegistry:
    registry = RoleRegistry()
    roles_path = os.path.join(data_dir, ROLES_FILE)
    if not os.path.exists(roles_path):
        logger.warning(f"No {ROLES_FILE} in {data_dir}; every admin call will be rejected")
        return registry
    with open(roles_path, "r") as f:
        grants = json.load(f)
    for role_name, addresses in grants.items():
        for address in addresses:
            registry.grant_role(Role(role_name), address)
    return registry

def build_service(data_dir: str) -> StakingService:
    os.makedirs(data_dir, exist_ok=True)
    db = StorageDB(os.path.join(data_dir, "ledger.db"))
    bank = TokenBank()
    service = StakingService(
        token_bank=bank,
        access=load_roles(data_dir),
        db=db,
        admin_wallet=CURRENT_NETWORK.admin_wallet,
    )
    service.load()
    return service

def cmd_run(args):
    data_dir = args.datadir
    print(f"Starting StakeLedger node ({CURRENT_NETWORK.network_id})...")
    print(f"Data dir: {data_dir}")
    print(f"RPC: {args.host}:{args.port}")

    service = build_service(data_dir)

    # Inject into RPC module (global vars)
    api.service = service
    if CURRENT_NETWORK.network_id == "devnet":
        api.bank = service.token_bank

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        server.run()
    except KeyboardInterrupt:
        pass
    finally:
        if service.db:
            service.db.close()

def main():
    parser = argparse.ArgumentParser(description="StakeLedger Node CLI")
    parser.add_argument("--datadir", default=CURRENT_NETWORK.data_dir, help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    init_parser = subparsers.add_parser("init", help="Initialize node configuration")
    init_parser.add_argument("--admin", default="", help="Address granted CONTRACT_ADMIN")
    init_parser.add_argument("--governance", default="", help="Address granted GOVERNANCE (defaults to --admin)")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default=CURRENT_NETWORK.rpc_host, help="RPC Host")
    run_parser.add_argument("--port", type=int, default=CURRENT_NETWORK.rpc_port, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
