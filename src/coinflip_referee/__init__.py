"""coinflip_referee - commit-reveal coin flip rounds with oracle arbitration."""

__version__ = "0.1.0"
