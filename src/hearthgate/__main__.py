from pathlib import Path
import argparse
import os
import sys

from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from hearthgate.bootstrap import Services, create_services
from hearthgate.domain.errors import ConcurrencyConflictError, NotFoundError, StorageFailureError
from hearthgate.logging_config import setup_logging


def _print_help_surface() -> None:
    print("\nHelp:")
    print("- Run `python -m hearthgate --help` for the list of commands.")
    print("- Startup issues: verify HEARTHGATE_DATABASE_URL or unset it to use the in-memory world.")
    print("- Fresh database: run `python -m hearthgate.infrastructure.db.sql.migrate` first.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hearthgate", description="Resolve location actions for characters")
    parser.add_argument("--database-url", default=None, help="Overrides HEARTHGATE_DATABASE_URL")
    parser.add_argument("--log-level", default=None, help="Overrides HEARTHGATE_LOG_LEVEL (default INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Find or create the player for a wallet address")
    login.add_argument("wallet_address")
    login.add_argument("--username", default=None)

    create = commands.add_parser("create-character", help="Create a character at the starting location")
    create.add_argument("player_id", type=int)
    create.add_argument("name")
    create.add_argument("--class", dest="character_class", default=None)

    actions = commands.add_parser("actions", help="List actions available at the character's location")
    actions.add_argument("character_id", type=int)

    execute = commands.add_parser("execute", help="Execute an action for a character")
    execute.add_argument("character_id", type=int)
    execute.add_argument("action_id", type=int)

    status = commands.add_parser("status", help="Check whether a character could execute an action now")
    status.add_argument("character_id", type=int)
    status.add_argument("action_id", type=int)

    commands.add_parser("sweep", help="Delete expired cooldown rows")

    move = commands.add_parser("move", help="Move a character to another location")
    move.add_argument("character_id", type=int)
    move.add_argument("location_id", type=int)
    return parser


def _run_command(services: Services, args: argparse.Namespace) -> int:
    if args.command == "login":
        player = services.players.login(args.wallet_address, username=args.username)
        print(f"Player #{player.id} ({player.username or player.wallet_address})")
        return 0

    if args.command == "create-character":
        character = services.characters.create_character(args.player_id, args.name, args.character_class)
        print(f"Created {character.name} (#{character.id}) at location #{character.location_id}.")
        return 0

    if args.command == "actions":
        context = services.characters.get_location_context(args.character_id)
        character = services.characters.character_repo.get(args.character_id)
        available = services.engine.get_available_actions(context.location_id, args.character_id, character.level)
        print(f"{context.location_name}, {context.town_name}:")
        if not available:
            print("  Nothing to do here right now.")
        for action in available:
            cost = f"{action.required_currency} gold, {action.action_points_cost} AP"
            print(f"  [{action.id}] {action.name} ({cost})")
        return 0

    if args.command == "execute":
        result = services.engine.execute(args.character_id, args.action_id)
        for line in result.messages:
            print(line)
        if result.success and result.character is not None:
            view = result.character
            print(
                f"Gold {view.currency} | XP {view.experience} | HP {view.health}/{view.max_health} "
                f"| AP {view.action_points}/{view.max_action_points}"
            )
        return 0 if result.success else 2

    if args.command == "status":
        verdict = services.engine.get_action_status(args.character_id, args.action_id)
        if verdict.eligible:
            print("Ready.")
            return 0
        print(f"Not ready: {verdict.reason.value}. {verdict.detail}".rstrip())
        return 2

    if args.command == "sweep":
        removed = services.sweeper.sweep()
        print(f"Removed {removed} expired cooldown(s).")
        return 0

    if args.command == "move":
        context = services.characters.move_to_location(args.character_id, args.location_id)
        print(f"Now at {context.location_name}, {context.town_name}.")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_level or os.getenv("HEARTHGATE_LOG_LEVEL", "INFO"))

    try:
        services = create_services(args.database_url)
        return _run_command(services, args)
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except (NotFoundError, ValueError) as exc:
        print(f"Request rejected: {exc}")
        return 1
    except ConcurrencyConflictError as exc:
        print(f"The character is busy, try again. Reason: {exc}")
        return 1
    except (StorageFailureError, RuntimeError) as exc:
        print("An unexpected error occurred. Nothing was saved.")
        print(f"Reason: {exc}")
        _print_help_surface()
        return 1


if __name__ == "__main__":
    sys.exit(main())
