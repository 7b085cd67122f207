"""Instruction builders, derived addresses and the Game account layout."""

from __future__ import annotations

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from coinflip_referee.protocol import instructions as ix
from coinflip_referee.protocol.accounts import (
    GAME_ACCOUNT_SPACE,
    GameAccount,
    OnchainStatus,
    decode_game_account,
    encode_game_account,
)
from coinflip_referee.protocol.addresses import (
    game_address,
    oracle_output_address,
    oracle_request_address,
    vault_address,
)
from coinflip_referee.protocol.encoding import DecodeError, InstructionReader, discriminator

from tests.conftest import ORACLE_PROGRAM_ID, PROGRAM_ID


# ── Addresses ─────────────────────────────────────────────────────


def test_game_address_matches_seed_layout():
    creator, seed = Keypair().pubkey(), Keypair().pubkey()
    expected = Pubkey.find_program_address([b"game", bytes(creator), bytes(seed)], PROGRAM_ID)
    assert game_address(PROGRAM_ID, creator, seed) == expected


def test_addresses_are_deterministic_and_seed_specific():
    creator = Keypair().pubkey()
    seed_a, seed_b = Keypair().pubkey(), Keypair().pubkey()
    assert game_address(PROGRAM_ID, creator, seed_a) == game_address(PROGRAM_ID, creator, seed_a)
    assert game_address(PROGRAM_ID, creator, seed_a)[0] != game_address(PROGRAM_ID, creator, seed_b)[0]


def test_vault_derived_from_game():
    game = Keypair().pubkey()
    expected = Pubkey.find_program_address([b"vault", bytes(game)], PROGRAM_ID)
    assert vault_address(PROGRAM_ID, game) == expected


def test_oracle_addresses_derived_from_requester():
    payer = Keypair().pubkey()
    request, _ = oracle_request_address(ORACLE_PROGRAM_ID, payer)
    output, _ = oracle_output_address(ORACLE_PROGRAM_ID, payer)
    assert request == Pubkey.find_program_address(
        [b"tool-oracle-request", bytes(payer)], ORACLE_PROGRAM_ID
    )[0]
    assert output != request


# ── Game program ──────────────────────────────────────────────────


def test_create_game_layout():
    creator, seed = Keypair().pubkey(), Keypair().pubkey()
    game, _ = game_address(PROGRAM_ID, creator, seed)
    vault, _ = vault_address(PROGRAM_ID, game)
    commit = b"\x11" * 32

    instruction = ix.create_game_ix(PROGRAM_ID, creator, seed, game, vault, 50_000_000, commit, 500)

    assert instruction.program_id == PROGRAM_ID
    r = InstructionReader(bytes(instruction.data))
    r.expect_discriminator("create_game")
    assert r.u64() == 50_000_000
    assert r.fixed_bytes(32) == commit
    assert r.u64() == 500
    assert r.at_end()

    metas = instruction.accounts
    assert [m.pubkey for m in metas] == [creator, seed, game, vault, SYSTEM_PROGRAM_ID]
    assert metas[0].is_signer and metas[0].is_writable
    assert not metas[1].is_signer and not metas[1].is_writable
    assert metas[2].is_writable and metas[3].is_writable


def test_join_game_layout():
    joiner, game, vault = (Keypair().pubkey() for _ in range(3))
    instruction = ix.join_game_ix(PROGRAM_ID, joiner, game, vault, b"\x22" * 32)
    assert bytes(instruction.data) == discriminator("join_game") + b"\x22" * 32
    assert instruction.accounts[0].is_signer


@pytest.mark.parametrize("builder,name", [
    (ix.reveal_creator_ix, "reveal_creator"),
    (ix.reveal_joiner_ix, "reveal_joiner"),
])
def test_reveal_layout(builder, name):
    signer, game = Keypair().pubkey(), Keypair().pubkey()
    secret = bytes(range(32))
    instruction = builder(PROGRAM_ID, signer, game, 1, secret)
    assert bytes(instruction.data) == discriminator(name) + b"\x01" + secret
    assert instruction.accounts[0].is_signer
    assert not instruction.accounts[0].is_writable
    assert instruction.accounts[1].is_writable


def test_reveal_rejects_short_secret():
    with pytest.raises(ValueError):
        ix.reveal_creator_ix(PROGRAM_ID, Keypair().pubkey(), Keypair().pubkey(), 0, b"\x00" * 16)


@pytest.mark.parametrize("builder,name", [
    (ix.finalize_ix, "finalize"),
    (ix.forfeit_if_timeout_ix, "forfeit_if_timeout"),
])
def test_payout_instructions_have_no_args(builder, name):
    keys = [Keypair().pubkey() for _ in range(4)]
    instruction = builder(PROGRAM_ID, *keys)
    assert bytes(instruction.data) == discriminator(name)
    assert [m.pubkey for m in instruction.accounts] == keys
    assert not any(m.is_signer for m in instruction.accounts)


# ── Tool oracle ───────────────────────────────────────────────────


def test_create_request_layout():
    payer = Keypair().pubkey()
    request, _ = oracle_request_address(ORACLE_PROGRAM_ID, payer)
    output, _ = oracle_output_address(ORACLE_PROGRAM_ID, payer)

    instruction = ix.create_request_ix(
        ORACLE_PROGRAM_ID, request, output, payer,
        prompt="Is it VALID?", pattern="^(VALID|CHEAT)$", budget=1_000_000,
    )

    r = InstructionReader(bytes(instruction.data))
    r.expect_discriminator("create_request")
    assert r.u8() == 0  # version
    assert r.u8() == ix.ORACLE_PROMPT_TAG
    assert r.option(r.string) == "Is it VALID?"
    assert r.u8() == ix.ORACLE_PATTERN_TAG
    assert r.option(r.string) == "^(VALID|CHEAT)$"
    assert r.u64() == 1_000_000
    assert r.at_end()
    assert [m.pubkey for m in instruction.accounts] == [request, output, payer, SYSTEM_PROGRAM_ID]


def test_create_request_absent_fields():
    payer = Keypair().pubkey()
    instruction = ix.create_request_ix(
        ORACLE_PROGRAM_ID, Keypair().pubkey(), Keypair().pubkey(), payer,
        prompt=None, pattern=None, budget=0,
    )
    assert bytes(instruction.data)[8:] == b"\x00" + b"\x00\x00" + b"\x01\x00" + bytes(8)


def test_reclaim_accounts_is_discriminator_only():
    payer = Keypair().pubkey()
    request, _ = oracle_request_address(ORACLE_PROGRAM_ID, payer)
    instruction = ix.reclaim_accounts_ix(ORACLE_PROGRAM_ID, request, payer, payer)
    assert bytes(instruction.data) == discriminator("reclaim_accounts")
    metas = instruction.accounts
    assert metas[1].pubkey == payer and not metas[1].is_signer
    assert metas[2].pubkey == payer and metas[2].is_signer


# ── Game account ──────────────────────────────────────────────────


def _account(**overrides) -> GameAccount:
    fields = dict(
        creator=Keypair().pubkey(),
        joiner=Keypair().pubkey(),
        stake_lamports=50_000_000,
        commit_creator=b"\x01" * 32,
        commit_joiner=b"\x02" * 32,
        revealed_creator=True,
        revealed_joiner=False,
        choice_creator=1,
        choice_joiner=0,
        secret_creator=b"\x03" * 32,
        secret_joiner=bytes(32),
        created_slot=1000,
        reveal_deadline_slot=1500,
        coin=0,
        winner=Pubkey.default(),
        status=OnchainStatus.REVEALING,
    )
    fields.update(overrides)
    return GameAccount(**fields)


def test_game_account_roundtrip_and_size():
    account = _account()
    data = encode_game_account(account)
    assert len(data) == GAME_ACCOUNT_SPACE
    assert decode_game_account(data) == account


def test_game_account_flags():
    account = _account(joiner=Pubkey.default())
    assert not account.has_joiner
    assert not account.has_winner
    assert _account(winner=Keypair().pubkey()).has_winner


def test_decode_rejects_foreign_account():
    data = bytearray(encode_game_account(_account()))
    data[0] ^= 0xFF
    with pytest.raises(DecodeError):
        decode_game_account(bytes(data))


def test_decode_rejects_unknown_status():
    data = bytearray(encode_game_account(_account()))
    data[-1] = 9
    with pytest.raises(DecodeError, match="status"):
        decode_game_account(bytes(data))
