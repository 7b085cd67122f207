"""CLI entry point for coinflip_referee."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Callable, Coroutine

import click
from solders.pubkey import Pubkey

from coinflip_referee.config import load_config
from coinflip_referee.errors import CoinflipRefereeError, FundingError, ProgramRejectedError
from coinflip_referee.ledger.keys import load_keypair
from coinflip_referee.models.config import LAMPORTS_PER_SOL, RunnerConfig
from coinflip_referee.models.records import EvidenceBundle
from coinflip_referee.protocol.addresses import (
    game_address,
    oracle_output_address,
    oracle_request_address,
    vault_address,
)
from coinflip_referee.runner import RoundRunner


def _sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.9f} SOL"


def _run(cfg: RunnerConfig, command: Callable[[RoundRunner], Coroutine[Any, Any, Any]]) -> Any:
    """Run `command` against an open runner, turning errors into exit code 1."""

    async def _main():
        async with RoundRunner(cfg) as runner:
            return await command(runner)

    try:
        return asyncio.run(_main())
    except CoinflipRefereeError as exc:
        click.echo(f"Error: {exc}", err=True)
        if isinstance(exc, FundingError):
            click.echo(f"Fund manually with:\n  {exc.remediation}", err=True)
        if isinstance(exc, ProgramRejectedError):
            if exc.signature:
                click.echo(f"Transaction: {exc.signature}", err=True)
            for line in exc.logs:
                click.echo(f"  {line}", err=True)
        sys.exit(1)
    except (FileNotFoundError, FileExistsError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _echo_round(bundle: EvidenceBundle) -> None:
    click.echo(f"Game:       {bundle.game}")
    click.echo(f"Vault:      {bundle.vault}")
    click.echo(f"Stake:      {bundle.stake_lamports} lamports ({bundle.stake_sol:g} SOL)")
    click.echo(f"Choices:    creator={bundle.choice_creator} joiner={bundle.choice_joiner}")
    click.echo(f"Coin:       {bundle.coin}")
    click.echo(f"Winner:     {bundle.winner}")
    for step, sig in bundle.txs.items():
        click.echo(f"  {step:<15} {sig}")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """coinflip_referee - commit-reveal coin flip rounds with oracle arbitration."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    cfg = load_config(config_path)
    ctx.obj["cfg"] = cfg

    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration, balances and the current slot."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    click.echo(f"RPC URL:    {cfg.rpc_url}")
    click.echo(f"Program:    {cfg.program_id}")
    click.echo(f"Oracle:     {cfg.oracle.program_id}")
    click.echo(f"Stake:      {cfg.stake_lamports} lamports ({cfg.stake_sol:g} SOL)")
    click.echo(f"Deadline:   {cfg.reveal_deadline_slots} slots")
    click.echo(f"Artifacts:  {cfg.artifacts_dir}")
    click.echo(f"DB path:    {cfg.db_path}")

    info = _run(cfg, lambda runner: runner.status())
    click.echo("")
    click.echo(f"Slot:       {info['slot']}")
    click.echo(f"Creator:    {info['creator']}  {_sol(info['creator_lamports'])}")
    if "joiner" in info:
        click.echo(f"Joiner:     {info['joiner']}  {_sol(info['joiner_lamports'])}")
    else:
        click.echo("Joiner:     (not set)")
    pending = "yes (run 'coinflip-referee reclaim')" if info["oracle_request_pending"] else "no"
    click.echo(f"Oracle request pending: {pending}")


@cli.command()
@click.option("--seed", default=None, help="Game seed public key")
@click.option("--creator", default=None, help="Creator public key (default: configured wallet)")
@click.pass_context
def derive(ctx: click.Context, seed: str | None, creator: str | None) -> None:
    """Print derived game, vault and oracle addresses."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    if creator is None:
        try:
            cfg.validate()
            creator_pk = load_keypair(cfg.wallet_path).pubkey()
        except CoinflipRefereeError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)
    else:
        creator_pk = Pubkey.from_string(creator)

    program_id = Pubkey.from_string(cfg.program_id)
    oracle_id = Pubkey.from_string(cfg.oracle.program_id)
    click.echo(f"Creator:         {creator_pk}")
    if seed:
        game, game_bump = game_address(program_id, creator_pk, Pubkey.from_string(seed))
        vault, vault_bump = vault_address(program_id, game)
        click.echo(f"Game:            {game} (bump {game_bump})")
        click.echo(f"Vault:           {vault} (bump {vault_bump})")
    request, _ = oracle_request_address(oracle_id, creator_pk)
    output, _ = oracle_output_address(oracle_id, creator_pk)
    click.echo(f"Oracle request:  {request}")
    click.echo(f"Oracle output:   {output}")


# ── Rounds ─────────────────────────────────────────────


@cli.command()
@click.option("--seed", default=None, help="Game seed public key (default: random)")
@click.option("--stake", type=int, default=None, help="Stake per player in lamports")
@click.option("--creator-choice", type=click.IntRange(0, 1), default=None)
@click.option("--joiner-choice", type=click.IntRange(0, 1), default=None)
@click.pass_context
def play(
    ctx: click.Context,
    seed: str | None,
    stake: int | None,
    creator_choice: int | None,
    joiner_choice: int | None,
) -> None:
    """Play one full round and write its evidence file."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    if stake is not None:
        cfg.stake_lamports = stake
    if creator_choice is not None:
        cfg.creator_choice = creator_choice
    if joiner_choice is not None:
        cfg.joiner_choice = joiner_choice

    game_seed = Pubkey.from_string(seed) if seed else None
    bundle = _run(cfg, lambda runner: runner.play(game_seed))
    click.echo("")
    _echo_round(bundle)


@cli.command()
@click.argument("game")
@click.pass_context
def resume(ctx: click.Context, game: str) -> None:
    """Continue an interrupted round from the journal."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    result = _run(cfg, lambda runner: runner.resume(game))
    if isinstance(result, EvidenceBundle):
        _echo_round(result)
    else:
        click.echo(f"Game {game} ended in state {result.state.value}; no evidence written.")


@cli.command()
@click.argument("game")
@click.pass_context
def forfeit(ctx: click.Context, game: str) -> None:
    """Settle a round whose reveal deadline has passed."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    sig = _run(cfg, lambda runner: runner.forfeit(game))
    click.echo(f"Forfeit tx: {sig}")


@cli.command()
@click.option("-n", "--limit", type=int, default=20)
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """Show journalled rounds and recent activity."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    rounds, activity = _run(cfg, lambda runner: runner.history(limit))
    if not rounds:
        click.echo("No rounds recorded.")
    for r in rounds:
        outcome = f"coin={r.coin} winner={r.winner[:8]}" if r.winner else ""
        click.echo(f"{r.created_at[:19]}  {r.game}  {r.state:<13} {outcome}")
    if activity:
        click.echo("")
        for a in activity:
            click.echo(f"{a.created_at[:19]}  [{a.event_type}] {a.message}")


# ── Referee ────────────────────────────────────────────


@cli.command()
@click.option("--game", default=None, help="Game address (default: latest round)")
@click.option("--max-attempts", type=int, default=None, help="Give up after N polls")
@click.option("--timeout", type=float, default=None, help="Give up after N seconds")
@click.pass_context
def referee(
    ctx: click.Context, game: str | None, max_attempts: int | None, timeout: float | None
) -> None:
    """Ask the tool oracle to judge a completed round."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    record = _run(
        cfg, lambda runner: runner.referee(game, max_attempts=max_attempts, timeout=timeout),
    )
    click.echo(f"Request tx: {record.tx}")
    click.echo(f"[VERDICT]: {record.verdict}")
    click.echo(f"  after {record.attempts} attempts ({record.elapsed_seconds:.1f}s)")


@cli.command()
@click.pass_context
def reclaim(ctx: click.Context) -> None:
    """Close a leftover oracle request account."""
    cfg: RunnerConfig = ctx.obj["cfg"]
    sig = _run(cfg, lambda runner: runner.reclaim())
    if sig is None:
        click.echo("Request account already empty. Ready to go.")
    else:
        click.echo(f"Reclaim tx: {sig}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
