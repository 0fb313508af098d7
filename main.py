import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from nation.game import Game
from nation.models import RESOURCE_KEYS, ROLES
from nation.persistence import GameLoadError, GameSaveError
from multiplayer import lobby
from multiplayer.store import DocumentStore, InMemoryDocumentStore, SqlDocumentStore, StoreError
from multiplayer.sync import MultiplayerSync

logger = logging.getLogger("nationsim.Main")
logger.addHandler(logging.NullHandler())

HELP = """\
Commands:
  status                     nation overview
  techs                      technologies available to research
  research <tech_id>         research a technology
  invest <stat>              invest in stability/economy/military/diplomacy/culture
  assign <role> <n>          move n adults into (or out of, with -n) a role
  month [n]                  advance n months (default 1)
  objectives                 this year's objectives
  debt <amount> [reason]     borrow money
  save                       save the game
  quit                       leave
Multiplayer:
  players                    roster and online status
  stance <player> <stance>   neutral/alliance/rivalry
  trade <player> <offer> <request>   e.g. trade bob wood=50 food=30
  accept <offer_id> / reject <offer_id>
  war <player>               declare war
  attack <player> [strength] attack a player you are at war with
  events                     unread events
"""


class Session:
    """What the command loop works on."""

    def __init__(self, game: Game, sync: Optional[MultiplayerSync] = None, save_path: Optional[Path] = None):
        self.game = game
        self.sync = sync
        self.save_path = save_path


def parse_amounts(text: str) -> Dict[str, int]:
    """``"wood=50,food=30"`` -> ``{"wood": 50, "food": 30}``. ``-`` means nothing."""
    result: Dict[str, int] = {}
    if text in ("", "-"):
        return result
    for part in text.split(","):
        key, _, value = part.partition("=")
        result[key.strip()] = int(value)
    return result


def format_status(game: Game) -> str:
    state = game.snapshot()
    res = state.resources
    nat = state.natural_resources
    pop = state.population
    lines = [
        f"{state.nation_name} led by {state.leader_name} - {state.month:02d}/{state.year} ({state.current_era})",
        "Resources: " + ", ".join(f"{k} {res.get(k):.1f}" for k in RESOURCE_KEYS),
        "Stockpiles: " + ", ".join(f"{k} {v}" for k, v in nat.as_dict().items()),
        (
            f"Population: {pop.total} (men {pop.men}, women {pop.women}, children {pop.children}) "
            f"workers {pop.workers}, soldiers {pop.soldiers}, scientists {pop.scientists}, "
            f"unassigned {pop.unassigned}, mood {pop.mood}"
        ),
        f"Technologies: {len(state.unlocked_techs)}  Year can advance: {state.can_advance_year}",
    ]
    if state.national_debt.total_debt > 0:
        debt = state.national_debt
        lines.append(f"Debt: {debt.total_debt:.0f} at {debt.interest_rate:.1%}")
    if game.economic_cycle is not None:
        cycle = game.economic_cycle
        lines.append(f"Economy: {cycle.phase} ({cycle.multiplier:.2f}x) until {cycle.next_change_year}")
    if state.last_research is not None and state.last_research.is_active(game.clock()):
        lines.append(f"Just researched: {state.last_research.name}")
    return "\n".join(lines)


def _done(ok: bool, message: str) -> str:
    return message if ok else "Not possible right now."


def cmd_status(session: Session, args: List[str]) -> str:
    return format_status(session.game)


def cmd_techs(session: Session, args: List[str]) -> str:
    techs = session.game.graph.available_techs(session.game.state.unlocked_techs)
    if not techs:
        return "Nothing left to research."
    return "\n".join(f"{t.id:<28} {t.name} [{t.era}] {', '.join(t.effects)}" for t in techs)


def _relay(session: Session, action_type: str, execute: Callable[[], bool], payload: Dict) -> bool:
    if session.sync is not None:
        return session.sync.execute_multiplayer_action(action_type, execute, payload)
    return execute()


def cmd_research(session: Session, args: List[str]) -> str:
    tech_id = args[0]
    ok = _relay(session, "tech_research", lambda: session.game.select_tech(tech_id), {"tech_id": tech_id})
    return _done(ok, f"Researched {tech_id}.")


def cmd_invest(session: Session, args: List[str]) -> str:
    key = args[0]
    ok = _relay(session, "resource_investment", lambda: session.game.invest_in_resource(key), {"resource": key})
    return _done(ok, f"Invested in {key}.")


def cmd_assign(session: Session, args: List[str]) -> str:
    role, amount = args[0], int(args[1])
    if role not in ROLES:
        return f"Roles: {', '.join(ROLES)}"
    ok = _relay(
        session,
        "population_distribution",
        lambda: session.game.distribute_people(role, amount),
        {"role": role, "amount": amount},
    )
    return _done(ok, f"{role}: {getattr(session.game.state.population, role)}")


def cmd_month(session: Session, args: List[str]) -> str:
    count = int(args[0]) if args else 1
    messages = []
    for _ in range(count):
        _relay(session, "month_advance", session.game.advance_month, {})
        game = session.game
        if game.last_breakthrough is not None:
            messages.append(f"Breakthrough: {game.last_breakthrough.name}!")
        if game.last_disaster is not None:
            messages.append(f"Disaster: {game.last_disaster.name}!")
        if game.last_cycle_change is not None:
            messages.append(f"Economy: {game.last_cycle_change.description}.")
    state = session.game.state
    messages.append(f"It is now {state.month:02d}/{state.year}.")
    if state.month == 12 and not state.can_advance_year:
        messages.append("Complete this year's objectives to enter the next year.")
    return "\n".join(messages)


def cmd_objectives(session: Session, args: List[str]) -> str:
    objectives = session.game.state.yearly_objectives
    return "\n".join(f"[{'x' if o.completed else ' '}] {o.description}" for o in objectives)


def cmd_debt(session: Session, args: List[str]) -> str:
    amount = float(args[0])
    reason = " ".join(args[1:]) or "government spending"
    return _done(session.game.take_debt(amount, reason), f"Borrowed {amount:.0f}.")


def cmd_save(session: Session, args: List[str]) -> str:
    session.game.save(session.save_path)
    return "Saved."


def _need_sync(session: Session) -> MultiplayerSync:
    if session.sync is None:
        raise ValueError("Not in a multiplayer game")
    return session.sync


def cmd_players(session: Session, args: List[str]) -> str:
    sync = _need_sync(session)
    lines = []
    for uid, info in sync.players.items():
        online = "online" if sync.is_player_online(uid) else "offline"
        you = " (you)" if uid == sync.player_id else ""
        stance = "" if uid == sync.player_id else f" stance {sync.stance_towards(uid)}"
        lines.append(f"{uid}{you}: {info.nation_name} military {info.military:.1f} {online}{stance}")
    return "\n".join(lines)


def cmd_stance(session: Session, args: List[str]) -> str:
    ok = _need_sync(session).set_diplomatic_stance(args[0], args[1])
    return _done(ok, f"Stance towards {args[0]} is now {args[1]}.")


def cmd_trade(session: Session, args: List[str]) -> str:
    offer_id = _need_sync(session).send_trade_offer(args[0], parse_amounts(args[1]), parse_amounts(args[2]))
    return _done(offer_id is not None, f"Offer {offer_id} sent.")


def cmd_accept(session: Session, args: List[str]) -> str:
    return _done(_need_sync(session).respond_to_trade_offer(args[0], True), "Offer accepted.")


def cmd_reject(session: Session, args: List[str]) -> str:
    return _done(_need_sync(session).respond_to_trade_offer(args[0], False), "Offer rejected.")


def cmd_war(session: Session, args: List[str]) -> str:
    return _done(_need_sync(session).declare_war(args[0]), f"War declared on {args[0]}.")


def cmd_attack(session: Session, args: List[str]) -> str:
    strength = float(args[1]) if len(args) > 1 else None
    outcome = _need_sync(session).launch_attack(args[0], strength)
    if outcome is None:
        return "Not possible right now."
    return f"Battle {outcome.result}: plunder {outcome.plunder}, casualties {outcome.attacker_casualties}"


def cmd_events(session: Session, args: List[str]) -> str:
    sync = _need_sync(session)
    events = sync.unread_events()
    for event in events:
        sync.mark_event_read(event.id)
    if not events:
        return "No new events."
    return "\n".join(f"{e.type} from {e.from_user_id}: {e.data}" for e in events)


COMMANDS: Dict[str, Callable[[Session, List[str]], str]] = {
    "status": cmd_status,
    "techs": cmd_techs,
    "research": cmd_research,
    "invest": cmd_invest,
    "assign": cmd_assign,
    "month": cmd_month,
    "objectives": cmd_objectives,
    "debt": cmd_debt,
    "save": cmd_save,
    "players": cmd_players,
    "stance": cmd_stance,
    "trade": cmd_trade,
    "accept": cmd_accept,
    "reject": cmd_reject,
    "war": cmd_war,
    "attack": cmd_attack,
    "events": cmd_events,
}


def run_command(session: Session, line: str) -> Optional[str]:
    """Execute one command line. Returns the text to show, or None to quit."""
    parts = line.split()
    if not parts:
        return ""
    name, args = parts[0].lower(), parts[1:]
    if name in ("quit", "exit"):
        return None
    if name == "help":
        return HELP
    command = COMMANDS.get(name)
    if command is None:
        return f"Unknown command {name!r}. Type 'help'."
    try:
        return command(session, args)
    except (IndexError, ValueError) as e:
        return f"Invalid arguments for {name}: {e}"
    except GameSaveError as e:
        logger.error("Failed to save game: %s", e)
        return "Saving failed."


def open_store(url: str) -> DocumentStore:
    if url == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore.from_url(url)


def main() -> int:
    """
    Entry point for the command-line game.
    Supports options:
      --load-file   : path to an existing save file
      --no-save     : skip saving at exit
      --store       : document store URL for multiplayer (SQLAlchemy URL or "memory")
      --game-id     : join this game (omit with --store to host a new one)
      --player-id   : identity used in the shared game
      --country     : start from a country preset
    Returns exit code 0 on success, nonzero on failure.
    """
    parser = argparse.ArgumentParser(description="Run a nation through the 20th century and beyond.")
    parser.add_argument("--load-file", type=str, default="", help="Path to an existing saved game")
    parser.add_argument("--no-save", action="store_true", help="Do not write the game back to disk on exit")
    parser.add_argument(
        "--log-level", type=str, default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument("--store", type=str, default="", help="Shared store URL, e.g. sqlite:///world.db")
    parser.add_argument("--game-id", type=str, default="", help="Multiplayer game to join")
    parser.add_argument("--player-id", type=str, default="player", help="Your player id in multiplayer games")
    parser.add_argument("--country", type=str, default="", help="Country preset id (e.g. uk, france)")
    parser.add_argument("--disasters", action="store_true", help="Enable random monthly disasters")
    parser.add_argument("--economic-cycles", action="store_true", help="Enable boom and bust economic cycles")
    parser.add_argument("--breakthroughs", action="store_true", help="Enable random research breakthroughs")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    save_path = Path(args.load_file) if args.load_file else None
    systems = dict(
        disasters=args.disasters,
        economic_cycles=args.economic_cycles,
        breakthroughs=args.breakthroughs,
    )
    try:
        game = Game.load(save_path, **systems)
    except GameLoadError as e:
        logger.error("Error loading save file %r: %s. Starting fresh.", args.load_file, e)
        game = Game(**systems)
    if args.country and not game.choose_country(args.country):
        logger.error("Unknown country %r", args.country)
        return 1

    sync: Optional[MultiplayerSync] = None
    store: Optional[DocumentStore] = None
    if args.store:
        try:
            store = open_store(args.store)
            game_id = args.game_id
            if game_id:
                if not lobby.join_game(store, game_id, args.player_id, game.snapshot()):
                    logger.error("Could not join game %r", game_id)
                    return 2
            else:
                game_id = lobby.create_game(store, args.player_id, game.state.nation_name, game.snapshot())
                print(f"Hosting game {game_id}")
        except StoreError as e:
            logger.error("Store unavailable: %s", e)
            return 2
        sync = MultiplayerSync(game, store, args.player_id)
        if not sync.start(game_id):
            logger.error("Could not start multiplayer session: %s", sync.last_error)
            return 2

    session = Session(game, sync, save_path)
    exit_code = 0
    print(format_status(game))
    print("Type 'help' for commands.")
    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break
            output = run_command(session, line)
            if output is None:
                break
            if output:
                print(output)
    except KeyboardInterrupt:
        print("\nStopping game...")
    finally:
        if sync is not None:
            sync.stop()
        if store is not None:
            store.close()
        if not args.no_save:
            try:
                game.save(save_path)
            except GameSaveError as e:
                logger.error("Error while saving game: %s", e)
                exit_code = 3
        else:
            print("Skipping save (--no-save)")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
