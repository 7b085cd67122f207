"""Instruction builders for the coinflip game program and the tool oracle.

Account order and signer/writable flags match the programs' account structs.
"""

from __future__ import annotations

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from coinflip_referee.protocol.commitment import DIGEST_LEN, SECRET_LEN
from coinflip_referee.protocol.encoding import (
    encode_instruction,
    fixed_bytes,
    option,
    string,
    u8,
    u64,
)

# Tags framing each optional text field of create_request.
ORACLE_PROMPT_TAG = 0
ORACLE_PATTERN_TAG = 1


def _signer(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=True, is_writable=True)


def _writable(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _readonly(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


# ── Game program ───────────────────────────────────────


def create_game_ix(
    program_id: Pubkey,
    creator: Pubkey,
    game_seed: Pubkey,
    game: Pubkey,
    vault: Pubkey,
    stake_lamports: int,
    commit_creator: bytes,
    reveal_deadline_slots: int,
) -> Instruction:
    data = encode_instruction(
        "create_game",
        u64(stake_lamports),
        fixed_bytes(commit_creator, DIGEST_LEN),
        u64(reveal_deadline_slots),
    )
    accounts = [
        _signer(creator),
        _readonly(game_seed),
        _writable(game),
        _writable(vault),
        _readonly(SYSTEM_PROGRAM_ID),
    ]
    return Instruction(program_id, data, accounts)


def join_game_ix(
    program_id: Pubkey,
    joiner: Pubkey,
    game: Pubkey,
    vault: Pubkey,
    commit_joiner: bytes,
) -> Instruction:
    data = encode_instruction("join_game", fixed_bytes(commit_joiner, DIGEST_LEN))
    accounts = [
        _signer(joiner),
        _writable(game),
        _writable(vault),
        _readonly(SYSTEM_PROGRAM_ID),
    ]
    return Instruction(program_id, data, accounts)


def _reveal_ix(
    name: str, program_id: Pubkey, signer: Pubkey, game: Pubkey, choice: int, secret: bytes
) -> Instruction:
    data = encode_instruction(name, u8(choice), fixed_bytes(secret, SECRET_LEN))
    accounts = [
        AccountMeta(pubkey=signer, is_signer=True, is_writable=False),
        _writable(game),
    ]
    return Instruction(program_id, data, accounts)


def reveal_creator_ix(
    program_id: Pubkey, creator: Pubkey, game: Pubkey, choice: int, secret: bytes
) -> Instruction:
    return _reveal_ix("reveal_creator", program_id, creator, game, choice, secret)


def reveal_joiner_ix(
    program_id: Pubkey, joiner: Pubkey, game: Pubkey, choice: int, secret: bytes
) -> Instruction:
    return _reveal_ix("reveal_joiner", program_id, joiner, game, choice, secret)


def _payout_ix(
    name: str,
    program_id: Pubkey,
    game: Pubkey,
    vault: Pubkey,
    creator_payout: Pubkey,
    joiner_payout: Pubkey,
) -> Instruction:
    accounts = [
        _writable(game),
        _writable(vault),
        _writable(creator_payout),
        _writable(joiner_payout),
    ]
    return Instruction(program_id, encode_instruction(name), accounts)


def finalize_ix(
    program_id: Pubkey,
    game: Pubkey,
    vault: Pubkey,
    creator_payout: Pubkey,
    joiner_payout: Pubkey,
) -> Instruction:
    return _payout_ix("finalize", program_id, game, vault, creator_payout, joiner_payout)


def forfeit_if_timeout_ix(
    program_id: Pubkey,
    game: Pubkey,
    vault: Pubkey,
    creator_payout: Pubkey,
    joiner_payout: Pubkey,
) -> Instruction:
    return _payout_ix(
        "forfeit_if_timeout", program_id, game, vault, creator_payout, joiner_payout
    )


# ── Tool oracle ────────────────────────────────────────


def _tagged_text(tag: int, value: str | None) -> bytes:
    return u8(tag) + option(value, string)


def create_request_ix(
    oracle_program_id: Pubkey,
    request: Pubkey,
    output: Pubkey,
    payer: Pubkey,
    prompt: str | None,
    pattern: str | None,
    budget: int,
    version: int = 0,
) -> Instruction:
    data = encode_instruction(
        "create_request",
        u8(version),
        _tagged_text(ORACLE_PROMPT_TAG, prompt),
        _tagged_text(ORACLE_PATTERN_TAG, pattern),
        u64(budget),
    )
    accounts = [
        _writable(request),
        _writable(output),
        _signer(payer),
        _readonly(SYSTEM_PROGRAM_ID),
    ]
    return Instruction(oracle_program_id, data, accounts)


def reclaim_accounts_ix(
    oracle_program_id: Pubkey,
    request: Pubkey,
    destination: Pubkey,
    payer: Pubkey,
) -> Instruction:
    accounts = [
        _writable(request),
        _writable(destination),
        _signer(payer),
        _readonly(SYSTEM_PROGRAM_ID),
    ]
    return Instruction(oracle_program_id, encode_instruction("reclaim_accounts"), accounts)
