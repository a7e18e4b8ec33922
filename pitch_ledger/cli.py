"""CLI commands for pitch-ledger (bets, funds, history, audit)."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable

from pitch_ledger.analysis.queries import resolve_match_selector
from pitch_ledger.config import Settings
from pitch_ledger.errors import LedgerError, StorageError
from pitch_ledger.main import Ledger, configure_logging, open_ledger

STATUS_ICON = {"WON": "✅", "LOST": "❌", "PUSH": "➖", "PENDING": "⏳"}


def _fmt_odds(value: object) -> str:
    return "N/A" if value is None else str(value)


async def show_summary(ledger: Ledger) -> None:
    summary = await ledger.queries.account_summary()
    acct = summary.account
    print("Account Summary:")
    print(f"  Balance: ${acct.balance}")
    print(f"  Bets settled: {summary.total_bets} ({acct.total_wins}W / {acct.total_losses}L)")
    print(f"  Win rate: {summary.win_rate}%")
    print(f"  Total profit/loss: ${acct.total_profit_loss}")
    print(f"  Deposits: ${acct.total_deposits}  Withdrawals: ${acct.total_withdrawals}")
    if summary.recent_bets:
        print("Recent bets:")
        for view in summary.recent_bets:
            bet = view.bet
            print(
                f"  {STATUS_ICON[bet.status.value]} #{bet.id} {view.home_team} vs {view.away_team}: "
                f"{bet.side.value} ${bet.stake} @ {bet.odds_taken} -> {bet.status.value} "
                f"({bet.profit_loss:+})"
            )


async def show_matches(ledger: Ledger) -> None:
    views = await ledger.queries.scheduled_matches()
    if not views:
        print("No upcoming matches found.")
        return
    print("Upcoming matches:")
    for view in views:
        odds = view.odds
        home, draw, away = (
            (odds.home_odds, odds.draw_odds, odds.away_odds) if odds else (None, None, None)
        )
        print(f"  [{view.match_id}] {view.stage_name}: {view.home_team} vs {view.away_team}")
        print(f"      Odds: H {_fmt_odds(home)} | D {_fmt_odds(draw)} | A {_fmt_odds(away)}")


async def place_bet(ledger: Ledger, selector: str, side: str, amount: str) -> None:
    match_id = await resolve_match_selector(ledger.queries, selector)
    bet_id = await ledger.bets.place_bet(match_id, side, amount)
    bet = await ledger.bets.get_bet(bet_id)
    account = await ledger.funds.get_account()
    if bet is None:
        raise StorageError(f"bet {bet_id} missing after placement")
    print(f"Bet #{bet.id} placed: {bet.side.value} ${bet.stake} @ {bet.odds_taken}")
    print(f"  Potential payout: ${bet.potential_payout}  New balance: ${account.balance}")


async def deposit(ledger: Ledger, amount: str) -> None:
    account = await ledger.funds.deposit(amount)
    print(f"Deposit successful. New balance: ${account.balance}")


async def withdraw(ledger: Ledger, amount: str) -> None:
    account = await ledger.funds.withdraw(amount)
    print(f"Withdrawal successful. New balance: ${account.balance}")


async def show_history(ledger: Ledger) -> None:
    views = await ledger.queries.bet_history()
    if not views:
        print("No bets found.")
        return
    for view in views:
        bet = view.bet
        print(f"{STATUS_ICON[bet.status.value]} Bet #{bet.id} ({view.stage_name})")
        print(f"   {view.home_team} vs {view.away_team} | {bet.side.value} @ {bet.odds_taken}")
        print(f"   Stake ${bet.stake} | Potential ${bet.potential_payout} | {bet.status.value}")
        if bet.settled_at:
            print(f"   Payout ${bet.actual_payout} | P/L {bet.profit_loss:+}")
    print(f"Total profit/loss: {views[0].running_profit_loss:+}")


async def show_transactions(ledger: Ledger, limit: int) -> None:
    txs = await ledger.queries.transaction_history(limit)
    if not txs:
        print("No transactions found.")
        return
    for tx in txs:
        print(
            f"  #{tx.id} {tx.occurred_at[:19]} {tx.kind.value:<15} {tx.amount:+} "
            f"(${tx.balance_before} -> ${tx.balance_after}) {tx.description or ''}"
        )


async def show_results(ledger: Ledger, limit: int) -> None:
    grouped = await ledger.queries.completed_results(limit)
    if not grouped:
        print("No completed matches found.")
        return
    for stage, results in grouped.items():
        print(f"{stage}:")
        for r in results:
            print(f"  {r.home_team} {r.full_time_score} {r.away_team}  ({r.result}, {r.match_date})")


async def settle(ledger: Ledger) -> None:
    settled = await ledger.settlement.reconcile()
    print(f"Settled {settled} pending bet(s).")


async def audit(ledger: Ledger) -> bool:
    result = await ledger.auditor.verify()
    if result.ok:
        print(f"Ledger OK: {result.entries} entries replay to ${result.replayed_balance}.")
    else:
        print(
            f"Ledger MISMATCH: replayed ${result.replayed_balance}, "
            f"stored ${result.stored_balance}, broken entries {result.broken_links}"
        )
    return result.ok


async def _run(settings: Settings, command: Callable[[Ledger], Awaitable[object]]) -> int:
    configure_logging(settings.log_level)

    ledger = await open_ledger(settings)
    try:
        outcome = await command(ledger)
    except LedgerError as exc:
        print(f"Error: {exc}")
        return 1
    finally:
        await ledger.db.close()
    return 1 if outcome is False else 0


def cli() -> None:
    parser = argparse.ArgumentParser(prog="pitch-ledger", description="Virtual football betting ledger")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("summary", help="Show account summary and recent bets")
    sub.add_parser("matches", help="List upcoming matches with latest odds")

    bt = sub.add_parser("bet", help="Place a bet on a scheduled match")
    bt.add_argument("match", help="Match id or 'Stage-Home-Away' reference")
    bt.add_argument("side", type=str.upper, choices=["HOME", "DRAW", "AWAY"])
    bt.add_argument("amount", help="Stake amount")

    dp = sub.add_parser("deposit", help="Add funds")
    dp.add_argument("amount")

    wd = sub.add_parser("withdraw", help="Withdraw funds")
    wd.add_argument("amount")

    sub.add_parser("history", help="Show bet history with running profit/loss")

    tx = sub.add_parser("transactions", help="Show the transaction journal")
    tx.add_argument("--limit", type=int, default=50)

    rs = sub.add_parser("results", help="Show completed matches grouped by stage")
    rs.add_argument("--limit", type=int, default=None)

    sub.add_parser("settle", help="Settle completed matches with pending bets")
    sub.add_parser("audit", help="Replay the journal against the balance")

    args = parser.parse_args()
    settings = Settings()

    commands: dict[str, Callable[[Ledger], Awaitable[object]]] = {
        "summary": show_summary,
        "matches": show_matches,
        "bet": lambda led: place_bet(led, args.match, args.side, args.amount),
        "deposit": lambda led: deposit(led, args.amount),
        "withdraw": lambda led: withdraw(led, args.amount),
        "history": show_history,
        "transactions": lambda led: show_transactions(led, args.limit),
        "results": lambda led: show_results(led, args.limit or settings.recent_results_limit),
        "settle": settle,
        "audit": audit,
    }

    command = commands.get(args.command or "")
    if command is None:
        parser.print_help()
        sys.exit(1)
    sys.exit(asyncio.run(_run(settings, command)))


if __name__ == "__main__":
    cli()
