"""Wire-level protocol: commitments, derived addresses, instruction encoding."""

from coinflip_referee.protocol.accounts import GameAccount, OnchainStatus, decode_game_account
from coinflip_referee.protocol.addresses import (
    derive,
    game_address,
    oracle_output_address,
    oracle_request_address,
    vault_address,
)
from coinflip_referee.protocol.commitment import PlayerCommitment, commit, new_secret, verify
from coinflip_referee.protocol.encoding import InstructionReader, discriminator, encode_instruction

__all__ = [
    "GameAccount", "OnchainStatus", "decode_game_account",
    "derive", "game_address", "vault_address",
    "oracle_request_address", "oracle_output_address",
    "PlayerCommitment", "commit", "new_secret", "verify",
    "InstructionReader", "discriminator", "encode_instruction",
]
