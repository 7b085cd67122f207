"""Program-derived address helpers. Pure functions, no RPC."""

from __future__ import annotations

from typing import Sequence

from solders.pubkey import Pubkey

GAME_SEED = b"game"
VAULT_SEED = b"vault"
ORACLE_REQUEST_SEED = b"tool-oracle-request"
ORACLE_OUTPUT_SEED = b"tool-oracle-output"


def derive(program_id: Pubkey, seeds: Sequence[bytes]) -> tuple[Pubkey, int]:
    """Find the program address and bump for an ordered list of seed tags."""
    return Pubkey.find_program_address([bytes(s) for s in seeds], program_id)


def game_address(program_id: Pubkey, creator: Pubkey, game_seed: Pubkey) -> tuple[Pubkey, int]:
    return derive(program_id, [GAME_SEED, bytes(creator), bytes(game_seed)])


def vault_address(program_id: Pubkey, game: Pubkey) -> tuple[Pubkey, int]:
    return derive(program_id, [VAULT_SEED, bytes(game)])


def oracle_request_address(oracle_program_id: Pubkey, requester: Pubkey) -> tuple[Pubkey, int]:
    return derive(oracle_program_id, [ORACLE_REQUEST_SEED, bytes(requester)])


def oracle_output_address(oracle_program_id: Pubkey, requester: Pubkey) -> tuple[Pubkey, int]:
    return derive(oracle_program_id, [ORACLE_OUTPUT_SEED, bytes(requester)])
